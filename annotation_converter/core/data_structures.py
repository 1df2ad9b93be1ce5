#!/usr/bin/env python3

"""
Core data structures for the annotation converter.

Defines the finalized, read-only annotation model: genes own transcripts,
transcripts own exons. These objects are produced by ModelBuilder.finalize()
and are only read afterwards by the validator and the writers.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .coordinates import Interval, Strand

# Transcript attribute keys holding the coding region (1-based, inclusive).
CDS_START_KEY = 'cds_start'
CDS_END_KEY = 'cds_end'
# Codon records (start_codon, stop_codon) seen inside the coding region.
CODONS_KEY = 'cds_codons'
CODING_KEYS = (CDS_START_KEY, CDS_END_KEY, CODONS_KEY)

START_CODON = 'start_codon'
STOP_CODON = 'stop_codon'


@dataclass(frozen=True)
class Exon:
    """Represents an exon; owned by exactly one transcript."""
    interval: Interval
    index: int = 0

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    @property
    def length(self) -> int:
        """Get exon length."""
        return self.interval.length


@dataclass(frozen=True)
class Feature:
    """
    A record outside the gene/transcript/exon hierarchy (UTR, repeat, ...).

    Only the GFF/GTF writer can carry these; the original line number is kept
    so problems can be reported against the input.
    """
    chrom: str
    source: str
    feature_type: str
    interval: Interval
    strand: Strand = Strand.UNKNOWN
    score: str = '.'
    phase: str = '.'
    attributes: Dict[str, str] = field(default_factory=dict)
    line_number: int = 0


@dataclass(frozen=True)
class Transcript:
    """Represents a transcript with its exons, sorted by genomic start."""
    id: str
    gene_id: str
    chrom: str
    interval: Interval
    strand: Strand
    exons: Tuple[Exon, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    source: str = '.'
    features: Tuple[Feature, ...] = ()

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    @property
    def exon_count(self) -> int:
        """Get number of exons."""
        return len(self.exons)

    @property
    def total_exon_length(self) -> int:
        """Get total length of all exons."""
        return sum(exon.length for exon in self.exons)

    @property
    def coding_interval(self) -> Optional[Interval]:
        """
        Coding region recorded for this transcript, if any.

        Returns None when no CDS bounds were recorded or when the recorded
        bounds describe an empty coding region (refFlat cdsStart == cdsEnd).
        """
        if CDS_START_KEY not in self.attributes or CDS_END_KEY not in self.attributes:
            return None
        start = int(self.attributes[CDS_START_KEY])
        end = int(self.attributes[CDS_END_KEY])
        if start > end:
            return None
        return Interval(start, end)

    @property
    def has_coding_bounds(self) -> bool:
        return CDS_START_KEY in self.attributes and CDS_END_KEY in self.attributes

    @property
    def codons(self) -> Tuple[str, ...]:
        """Codon record types recorded for the coding region, sorted."""
        return tuple(c for c in self.attributes.get(CODONS_KEY, '').split(',') if c)


@dataclass(frozen=True)
class Gene:
    """Represents a gene with multiple transcripts."""
    id: str
    chrom: str
    strand: Strand
    interval: Interval
    name: Optional[str] = None
    transcripts: Tuple[Transcript, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    source: str = '.'

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    @property
    def transcript_count(self) -> int:
        """Get number of transcripts."""
        return len(self.transcripts)

    def get_transcript_by_id(self, transcript_id: str) -> Optional[Transcript]:
        """Get transcript by ID."""
        for transcript in self.transcripts:
            if transcript.id == transcript_id:
                return transcript
        return None


@dataclass(frozen=True)
class AnnotationModel:
    """
    Finalized annotation: chromosome name -> genes ordered by position.

    ``features`` holds non-hierarchical records whose parent could not be
    tied to a transcript, ordered by (chrom, start, end, type).
    """
    chromosomes: Mapping[str, Tuple[Gene, ...]] = field(default_factory=dict)
    features: Tuple[Feature, ...] = ()

    def genes(self) -> Iterator[Gene]:
        """Iterate genes in deterministic output order."""
        for chrom in self.chromosomes:
            yield from self.chromosomes[chrom]

    def transcripts(self) -> Iterator[Transcript]:
        for gene in self.genes():
            yield from gene.transcripts

    def features_on(self, chrom: str) -> List[Feature]:
        return [feature for feature in self.features if feature.chrom == chrom]

    def chromosome_names(self) -> List[str]:
        """All chromosomes carrying genes or orphan features, sorted."""
        return sorted(set(self.chromosomes) | {f.chrom for f in self.features})

    @property
    def gene_count(self) -> int:
        return sum(len(genes) for genes in self.chromosomes.values())

    @property
    def transcript_count(self) -> int:
        return sum(gene.transcript_count for gene in self.genes())

    @property
    def exon_count(self) -> int:
        return sum(transcript.exon_count for transcript in self.transcripts())

    @property
    def feature_count(self) -> int:
        attached = sum(len(transcript.features) for transcript in self.transcripts())
        return attached + len(self.features)

    def get_gene(self, gene_id: str) -> Optional[Gene]:
        for gene in self.genes():
            if gene.id == gene_id:
                return gene
        return None

    def get_transcript(self, transcript_id: str) -> Optional[Transcript]:
        for transcript in self.transcripts():
            if transcript.id == transcript_id:
                return transcript
        return None
