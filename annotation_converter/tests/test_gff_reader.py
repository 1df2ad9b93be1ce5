#!/usr/bin/env python3

"""
Unit tests for the GFF3/GTF reader.

Covers explicit (GFF3 ID/Parent) and implicit (GTF gene_id/transcript_id)
grouping, out-of-order records, malformed lines under each policy and
features outside the gene hierarchy.
"""

import unittest
import sys
import os

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from annotation_converter.core.config import ConversionConfig
from annotation_converter.core.coordinates import Interval, Strand
from annotation_converter.core.exceptions import (
    ErrorKind, MalformedRecordError, MissingParentError, StructuralConflictError
)
from annotation_converter.core.parsers import GffReader
from annotation_converter.core.attributes import GTF
from annotation_converter.core.report import Severity


def gff_lines(*rows):
    """Build tab-separated input lines from whitespace-free column tuples."""
    return ['\t'.join(row) + '\n' for row in rows]


def read(lines, dialect='gff3', **options):
    reader = GffReader(ConversionConfig(**options), default_dialect=dialect)
    result = reader.read(lines)
    return result, result.builder.finalize()


class TestGff3Reader(unittest.TestCase):
    """Test GFF3 parsing through the ID/Parent hierarchy."""

    def test_basic_gene(self):
        lines = ['##gff-version 3\n'] + gff_lines(
            ('chr1', 'src', 'gene', '100', '500', '.', '+', '.', 'ID=g1;Name=G1;biotype=coding'),
            ('chr1', 'src', 'mRNA', '100', '500', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'ID=e1;Parent=t1'),
            ('chr1', 'src', 'exon', '300', '500', '.', '+', '.', 'ID=e2;Parent=t1'),
            ('chr1', 'src', 'CDS', '150', '200', '.', '+', '0', 'Parent=t1'),
            ('chr1', 'src', 'CDS', '300', '450', '.', '+', '2', 'Parent=t1'),
        )
        result, model = read(lines)

        self.assertEqual(result.issues, [])
        self.assertEqual(result.records_read, 6)
        gene = model.get_gene('g1')
        self.assertEqual(gene.name, 'G1')
        self.assertEqual(gene.attributes, {'biotype': 'coding'})
        self.assertEqual(gene.strand, Strand.FORWARD)
        transcript = gene.transcripts[0]
        self.assertEqual(transcript.id, 't1')
        self.assertEqual(transcript.exon_count, 2)
        self.assertEqual(transcript.coding_interval, Interval(150, 450))

    def test_out_of_order_parents(self):
        """Children seen before their parents are linked after the pass."""
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
        )
        result, model = read(lines)
        self.assertEqual(result.issues, [])
        self.assertEqual(model.get_transcript('t1').exon_count, 1)
        self.assertEqual(model.get_transcript('t1').gene_id, 'g1')

    def test_strict_parents_report_missing_parent(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t1;Parent=g1'),
        )
        result, model = read(lines, allow_out_of_order_parents=False,
                             on_structural_conflict='warn')
        self.assertEqual(len(result.issues), 1)
        issue = result.issues[0]
        self.assertEqual(issue.kind, ErrorKind.MISSING_PARENT)
        self.assertEqual(issue.line_number, 1)
        self.assertEqual(model.get_transcript('t1').exon_count, 0)

    def test_parent_never_defined(self):
        lines = gff_lines(
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'exon', '300', '400', '.', '+', '.', 'Parent=t_missing'),
        )
        reader = GffReader(ConversionConfig())
        with self.assertRaises(MissingParentError) as context:
            reader.read(lines)
        self.assertEqual(context.exception.parent_id, 't_missing')
        self.assertEqual([i.kind for i in reader.issues], [ErrorKind.MISSING_PARENT])
        self.assertEqual(reader.issues[0].line_number, 4)
        self.assertEqual(reader.issues[0].severity, Severity.ERROR)

        result, _ = read(lines, on_structural_conflict='warn')
        self.assertEqual([i.kind for i in result.issues], [ErrorKind.MISSING_PARENT])
        self.assertEqual(result.issues[0].severity, Severity.WARNING)

    def test_multi_parent_exon(self):
        """An exon shared by two transcripts is attached to both."""
        lines = gff_lines(
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t2;Parent=g1'),
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1,t2'),
        )
        result, model = read(lines)
        self.assertEqual(result.issues, [])
        self.assertEqual(model.get_transcript('t1').exon_count, 1)
        self.assertEqual(model.get_transcript('t2').exon_count, 1)

    def test_features_kept(self):
        """UTRs attach to their transcript, unparented records become orphans."""
        lines = gff_lines(
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
            ('chr1', 'src', 'mRNA', '100', '200', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'five_prime_UTR', '100', '120', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'rm', 'repeat_region', '1000', '2000', '.', '.', '.', 'ID=r1'),
        )
        result, model = read(lines)
        self.assertEqual(result.issues, [])
        utr = model.get_transcript('t1').features[0]
        self.assertEqual(utr.feature_type, 'five_prime_UTR')
        self.assertEqual(utr.line_number, 4)
        self.assertEqual(len(model.features), 1)
        self.assertEqual(model.features[0].attributes, {'ID': 'r1'})

    def test_fasta_section_ends_annotation(self):
        lines = gff_lines(
            ('chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
        ) + ['##FASTA\n', '>chr1\n', 'ACGT\n']
        result, model = read(lines)
        self.assertEqual(result.issues, [])
        self.assertEqual(model.gene_count, 1)

    def test_sequence_renaming(self):
        lines = gff_lines(
            ('NC_chr1', 'src', 'gene', '100', '200', '.', '+', '.', 'ID=g1'),
        )
        _, model = read(lines, seq_name_lstrip='NC_', seq_name_prefix='hg_')
        self.assertEqual(model.get_gene('g1').chrom, 'hg_chr1')


class TestMalformedPolicies(unittest.TestCase):
    """Test the skip / collect / abort policies on malformed lines."""

    def setUp(self):
        self.lines = gff_lines(
            ('chr1', 'src', 'gene', '100', '500', '.', '+', '.', 'ID=g1'),
            ('chr1', 'src', 'mRNA', '100', '500', '.', '+', '.', 'ID=t1;Parent=g1'),
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'exon', '300', '250', '.', '+', '.', 'Parent=t1'),
            ('chr1', 'src', 'exon', '400', '500', '.', '+', '.', 'Parent=t1'),
        )

    def test_collect(self):
        """The bad line is reported and earlier records are untouched."""
        result, model = read(self.lines)
        self.assertEqual(len(result.issues), 1)
        issue = result.issues[0]
        self.assertEqual(issue.kind, ErrorKind.MALFORMED_RECORD)
        self.assertEqual(issue.severity, Severity.ERROR)
        self.assertEqual(issue.line_number, 4)
        self.assertIn('300\t250', issue.raw_line)
        self.assertEqual([e.interval for e in model.get_transcript('t1').exons],
                         [Interval(100, 200), Interval(400, 500)])

    def test_skip(self):
        result, _ = read(self.lines, on_malformed_record='skip')
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].severity, Severity.WARNING)

    def test_abort(self):
        reader = GffReader(ConversionConfig(on_malformed_record='abort'))
        with self.assertRaises(MalformedRecordError) as context:
            reader.read(self.lines)
        self.assertEqual(context.exception.line_number, 4)
        self.assertEqual(len(reader.issues), 1)

    def test_wrong_column_count(self):
        lines = ['chr1\tsrc\tgene\t100\t200\n']
        result, model = read(lines)
        self.assertEqual(result.issues[0].kind, ErrorKind.MALFORMED_RECORD)
        self.assertEqual(model.gene_count, 0)

    def test_non_numeric_coordinates(self):
        lines = gff_lines(('chr1', 'src', 'gene', 'abc', '200', '.', '+', '.', 'ID=g1'))
        result, _ = read(lines)
        self.assertEqual(result.issues[0].kind, ErrorKind.MALFORMED_RECORD)


class TestGtfReader(unittest.TestCase):
    """Test GTF parsing through gene_id/transcript_id co-occurrence."""

    def test_exon_before_transcript_line(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'gene_id "g1"; transcript_id "t1";'),
            ('chr1', 'src', 'transcript', '100', '500', '.', '+', '.',
             'gene_id "g1"; transcript_id "t1"; transcript_biotype "mRNA";'),
            ('chr1', 'src', 'exon', '300', '500', '.', '+', '.', 'gene_id "g1"; transcript_id "t1";'),
        )
        result, model = read(lines, dialect=GTF)
        self.assertEqual(result.issues, [])
        self.assertEqual(model.gene_count, 1)
        transcript = model.get_transcript('t1')
        self.assertEqual(transcript.exon_count, 2)
        self.assertEqual(transcript.attributes, {'transcript_biotype': 'mRNA'})
        self.assertEqual(model.get_gene('g1').interval, Interval(100, 500))

    def test_coding_region_from_cds_and_codons(self):
        """start_codon and stop_codon widen the coding envelope."""
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '500', '.', '-', '.', 'gene_id "g1"; transcript_id "t1";'),
            ('chr1', 'src', 'CDS', '153', '400', '.', '-', '0', 'gene_id "g1"; transcript_id "t1";'),
            ('chr1', 'src', 'stop_codon', '150', '152', '.', '-', '0',
             'gene_id "g1"; transcript_id "t1";'),
        )
        _, model = read(lines, dialect=GTF)
        self.assertEqual(model.get_transcript('t1').coding_interval, Interval(150, 400))
        self.assertEqual(model.get_transcript('t1').codons, ('stop_codon',))

    def test_gene_name_and_custom_keys(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.',
             'locus "g1"; isoform "t1"; gene_name "ABC";'),
        )
        _, model = read(lines, dialect=GTF, gene_id_attribute='locus',
                        transcript_id_attribute='isoform')
        self.assertEqual(model.get_gene('g1').name, 'ABC')
        self.assertIsNotNone(model.get_transcript('t1'))

    def test_missing_transcript_id(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'gene_id "g1";'),
        )
        result, _ = read(lines, dialect=GTF)
        self.assertEqual(result.issues[0].kind, ErrorKind.MALFORMED_RECORD)

    def test_transcript_moves_between_genes(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'gene_id "g1"; transcript_id "t1";'),
            ('chr1', 'src', 'exon', '300', '400', '.', '+', '.', 'gene_id "g2"; transcript_id "t1";'),
        )
        with self.assertRaises(StructuralConflictError):
            GffReader(ConversionConfig(), default_dialect=GTF).read(lines)

        result, model = read(lines, dialect=GTF, on_structural_conflict='warn')
        self.assertEqual([i.kind for i in result.issues], [ErrorKind.STRUCTURAL_CONFLICT])
        self.assertEqual(result.issues[0].line_number, 2)
        self.assertIsNone(model.get_gene('g2'))

    def test_conflict_is_warning_under_warn_policy(self):
        lines = gff_lines(
            ('chr1', 'src', 'exon', '100', '200', '.', '+', '.', 'gene_id "g1"; transcript_id "t1";'),
            ('chr2', 'src', 'exon', '300', '400', '.', '+', '.', 'gene_id "g1"; transcript_id "t2";'),
        )
        result, _ = read(lines, dialect=GTF, on_structural_conflict='warn')
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].severity, Severity.WARNING)


if __name__ == '__main__':
    unittest.main()
