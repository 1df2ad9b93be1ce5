#!/usr/bin/env python3

"""
Output generation for finalized annotation models.

Writers only read the model and emit it in its deterministic order
(chromosome, gene start). Lossy conversions are reported as issues, and any
failure while writing raises SerializationError: the caller must treat the
partial output as invalid.
"""

import logging
from typing import Iterable, List, Optional, Set, TextIO, Tuple

from .attributes import GFF3, GTF, format_attributes
from .config import ConversionConfig
from .coordinates import Interval, Strand
from .data_structures import (
    AnnotationModel, CDS_END_KEY, CDS_START_KEY, CODING_KEYS, START_CODON, STOP_CODON,
    Feature, Gene, Transcript
)
from .exceptions import ErrorKind, SerializationError, UnsupportedFeatureError
from .parsers import GFF3_FORMAT, GTF_FORMAT, REFFLAT_FORMAT
from .report import Issue, Severity

Pairs = List[Tuple[str, str]]

CODON_LENGTH = 3


def _keys(pairs: Pairs) -> Set[str]:
    return {key for key, _ in pairs}


def _without_keys(items: Iterable[Tuple[str, str]], excluded: Set[str]) -> Pairs:
    return [(key, value) for key, value in items if key not in excluded]


def _with_phases(pieces: List[Interval], strand: Strand) -> List[Tuple[Interval, int]]:
    """
    Attach GFF phase to coding pieces given in genomic order.

    Phase is accumulated 5' -> 3', so minus-strand pieces are walked from
    the highest coordinate down.
    """
    walk = reversed(pieces) if strand == Strand.REVERSE else pieces
    phases = {}
    consumed = 0
    for piece in walk:
        phases[piece] = (3 - consumed % 3) % 3
        consumed += piece.length
    return [(piece, phases[piece]) for piece in pieces]


def _split_codon(pieces: List[Interval], strand: Strand,
                 three_prime: bool) -> Tuple[List[Interval], List[Interval]]:
    """
    Cut the codon at the 5' or 3' end off the coding pieces.

    Returns (codon, rest), both in genomic order. A codon may span an exon
    boundary, in which case it has more than one piece.
    """
    from_high = (strand == Strand.REVERSE) != three_prime
    ordered = list(reversed(pieces)) if from_high else list(pieces)
    codon, rest = [], []
    needed = CODON_LENGTH
    for piece in ordered:
        if needed == 0:
            rest.append(piece)
        elif piece.length <= needed:
            codon.append(piece)
            needed -= piece.length
        elif from_high:
            codon.append(Interval(piece.end - needed + 1, piece.end))
            rest.append(Interval(piece.start, piece.end - needed))
            needed = 0
        else:
            codon.append(Interval(piece.start, piece.start + needed - 1))
            rest.append(Interval(piece.start + needed, piece.end))
            needed = 0
    return (sorted(codon, key=lambda piece: piece.start),
            sorted(rest, key=lambda piece: piece.start))


class AnnotationWriter:
    """Base class for format writers."""

    format_name = ""

    def __init__(self, config: Optional[ConversionConfig] = None):
        self.config = config or ConversionConfig()

    def write(self, model: AnnotationModel, stream: TextIO) -> List[Issue]:
        """
        Serialize ``model`` to ``stream``.

        Returns:
            Warnings about information the target format cannot carry.

        Raises:
            SerializationError: writing failed part way through.
            UnsupportedFeatureError: on_unsupported_feature is 'abort' and the
                model holds records the format cannot represent.
        """
        issues = self._preflight(model)
        try:
            self._write(model, stream, issues)
        except (OSError, ValueError, TypeError) as e:
            raise SerializationError(f"Failed to write {self.format_name} output: {e}")
        logging.info(f"Wrote {model.transcript_count:,} transcripts as {self.format_name}")
        return issues

    def _preflight(self, model: AnnotationModel) -> List[Issue]:
        """Checks that must pass before the first byte is written."""
        return []

    def _write(self, model: AnnotationModel, stream: TextIO, issues: List[Issue]) -> None:
        raise NotImplementedError


class GffWriter(AnnotationWriter):
    """Emit canonical gene -> mRNA/transcript -> exon/CDS blocks in GFF3 or GTF."""

    def __init__(self, dialect: str = GFF3, config: Optional[ConversionConfig] = None):
        super().__init__(config)
        if dialect not in (GFF3, GTF):
            raise ValueError(f"Unknown GFF dialect: {dialect}")
        self.dialect = dialect
        self.format_name = dialect.upper()
        self.gene_key = self.config.gene_id_attribute
        self.transcript_key = self.config.transcript_id_attribute

    def _write(self, model: AnnotationModel, stream: TextIO, issues: List[Issue]) -> None:
        if self.dialect == GFF3:
            stream.write("##gff-version 3\n")

        for chrom in model.chromosome_names():
            for gene in model.chromosomes.get(chrom, ()):
                self._write_gene(stream, gene)
            for feature in model.features_on(chrom):
                self._write_line(stream, feature.chrom, feature.source, feature.feature_type,
                                 feature.interval, feature.strand,
                                 list(feature.attributes.items()),
                                 score=feature.score, phase=feature.phase)

    def _write_gene(self, stream: TextIO, gene: Gene) -> None:
        if self.dialect == GFF3:
            pairs = [('ID', gene.id)]
            if gene.name:
                pairs.append(('Name', gene.name))
        else:
            pairs = [(self.gene_key, gene.id)]
            if gene.name:
                pairs.append(('gene_name', gene.name))
        pairs.extend(_without_keys(gene.attributes.items(), _keys(pairs) | {'Parent'}))
        self._write_line(stream, gene.chrom, gene.source, 'gene', gene.interval,
                         gene.strand, pairs)

        for transcript in gene.transcripts:
            self._write_transcript(stream, gene, transcript)

    def _write_transcript(self, stream: TextIO, gene: Gene, transcript: Transcript) -> None:
        link = self._link(gene, transcript)
        if self.dialect == GFF3:
            pairs = [('ID', transcript.id), ('Parent', gene.id)]
            feature_type = 'mRNA'
        else:
            pairs = list(link)
            feature_type = 'transcript'
        # Stored copies of the linkage keys would repeat them with other values.
        pairs.extend(_without_keys(transcript.attributes.items(),
                                   _keys(pairs) | set(CODING_KEYS)))
        self._write_line(stream, transcript.chrom, transcript.source, feature_type,
                         transcript.interval, transcript.strand, pairs)

        for exon in transcript.exons:
            if self.dialect == GFF3:
                pairs = [('ID', f"{transcript.id}.exon{exon.index}"), ('Parent', transcript.id)]
            else:
                pairs = link + [('exon_number', str(exon.index))]
            self._write_line(stream, transcript.chrom, transcript.source, 'exon',
                             exon.interval, transcript.strand, pairs)

        numbers = {}
        for feature_type, piece, phase in self._coding_records(transcript):
            numbers[feature_type] = numbers.get(feature_type, 0) + 1
            if self.dialect == GFF3:
                suffix = 'cds' if feature_type == 'CDS' else feature_type
                pairs = [('ID', f"{transcript.id}.{suffix}{numbers[feature_type]}"),
                         ('Parent', transcript.id)]
            else:
                pairs = list(link)
            self._write_line(stream, transcript.chrom, transcript.source, feature_type,
                             piece, transcript.strand, pairs, phase=str(phase))

        for feature in transcript.features:
            self._write_line(stream, feature.chrom, feature.source, feature.feature_type,
                             feature.interval, feature.strand,
                             self._feature_pairs(feature, gene, transcript),
                             score=feature.score, phase=feature.phase)

    def _link(self, gene: Gene, transcript: Transcript) -> Pairs:
        if self.dialect == GFF3:
            return [('Parent', transcript.id)]
        return [(self.gene_key, gene.id), (self.transcript_key, transcript.id)]

    def _feature_pairs(self, feature: Feature, gene: Gene, transcript: Transcript) -> Pairs:
        """Attributes of an attached feature, re-linked in the target dialect."""
        linkage = {'Parent', 'gene_id', 'transcript_id', self.gene_key, self.transcript_key}
        rest = [(k, v) for k, v in feature.attributes.items() if k not in linkage and k != 'ID']
        own_id = [('ID', feature.attributes['ID'])] if 'ID' in feature.attributes else []
        if self.dialect == GFF3:
            return own_id + self._link(gene, transcript) + rest
        return self._link(gene, transcript) + own_id + rest

    def _coding_records(self, transcript: Transcript) -> List[Tuple[str, Interval, int]]:
        """
        CDS and codon lines of a transcript as (type, piece, phase).

        The stored coding region includes the stop codon. GTF CDS lines leave
        it out when a stop_codon was recorded; GFF3 CDS lines keep it.
        Codon lines are only written for codons recorded on a stranded
        transcript.
        """
        coding = transcript.coding_interval
        if coding is None:
            return []
        pieces = [exon.interval.intersection(coding) for exon in transcript.exons
                  if exon.interval.overlaps(coding)]
        strand = transcript.strand
        codons = transcript.codons
        if strand == Strand.UNKNOWN or sum(piece.length for piece in pieces) < CODON_LENGTH:
            codons = ()

        cds = pieces
        codon_lines = []
        if START_CODON in codons:
            start_codon, _ = _split_codon(pieces, strand, three_prime=False)
            codon_lines.append((START_CODON, start_codon))
        if STOP_CODON in codons:
            stop_codon, rest = _split_codon(pieces, strand, three_prime=True)
            codon_lines.append((STOP_CODON, stop_codon))
            if self.dialect == GTF:
                cds = rest

        records = [('CDS', piece, phase) for piece, phase in _with_phases(cds, strand)]
        for feature_type, codon in codon_lines:
            records.extend((feature_type, piece, phase)
                           for piece, phase in _with_phases(codon, strand))
        return records

    def _write_line(self, stream: TextIO, chrom: str, source: str, feature_type: str,
                    interval: Interval, strand: Strand, pairs: Pairs,
                    score: str = '.', phase: str = '.') -> None:
        if source in ('', '.'):
            source = self.config.default_source
        columns = [chrom, source, feature_type, str(interval.start), str(interval.end),
                   score or '.', strand.symbol, phase or '.',
                   format_attributes(pairs, self.dialect)]
        stream.write('\t'.join(columns) + '\n')


class RefFlatWriter(AnnotationWriter):
    """Emit one refFlat line per transcript, 0-based half-open."""

    format_name = 'refFlat'

    def _preflight(self, model: AnnotationModel) -> List[Issue]:
        """Report features refFlat cannot hold; abort before writing if configured."""
        issues = []
        dropped = [(feature, transcript.id) for transcript in model.transcripts()
                   for feature in transcript.features]
        dropped.extend((feature, "") for feature in model.features)

        for feature, owner in dropped:
            error = UnsupportedFeatureError(
                f"{feature.feature_type} at {feature.chrom}:{feature.interval} cannot be "
                f"represented in refFlat and was dropped",
                feature_type=feature.feature_type, entity_id=owner,
                line_number=feature.line_number)
            if self.config.on_unsupported_feature == 'abort':
                raise error
            issues.append(Issue.from_error(error, Severity.WARNING))

        if dropped:
            logging.warning(f"Dropping {len(dropped):,} feature(s) that refFlat cannot represent")
        return issues

    def _write(self, model: AnnotationModel, stream: TextIO, issues: List[Issue]) -> None:
        for gene in model.genes():
            for transcript in gene.transcripts:
                stream.write(self._format_transcript(gene, transcript, issues))

    @staticmethod
    def _format_transcript(gene: Gene, transcript: Transcript, issues: List[Issue]) -> str:
        tx_start, tx_end = transcript.interval.to_zero_based_half_open()

        if transcript.has_coding_bounds:
            cds_start = int(transcript.attributes[CDS_START_KEY]) - 1
            cds_end = int(transcript.attributes[CDS_END_KEY])
        else:
            # Documented lossy fallback: no CDS recorded, use the transcript bounds.
            cds_start, cds_end = tx_start, tx_end
            issues.append(Issue(
                kind=ErrorKind.UNSUPPORTED_FEATURE, severity=Severity.WARNING,
                message="No CDS bounds recorded; cdsStart/cdsEnd set to the transcript bounds",
                entity_id=transcript.id))

        starts, ends = [], []
        for exon in transcript.exons:
            start, end = exon.interval.to_zero_based_half_open()
            starts.append(str(start))
            ends.append(str(end))

        columns = [
            gene.id, transcript.id, transcript.chrom, transcript.strand.symbol,
            str(tx_start), str(tx_end), str(cds_start), str(cds_end),
            str(len(transcript.exons)),
            ''.join(f"{s}," for s in starts),
            ''.join(f"{e}," for e in ends),
        ]
        return '\t'.join(columns) + '\n'


def get_writer(output_format: str, config: Optional[ConversionConfig] = None) -> AnnotationWriter:
    """Writer instance for a format name."""
    if output_format == REFFLAT_FORMAT:
        return RefFlatWriter(config)
    if output_format == GTF_FORMAT:
        return GffWriter(GTF, config)
    if output_format == GFF3_FORMAT:
        return GffWriter(GFF3, config)
    raise ValueError(f"Unsupported output format: {output_format}")
