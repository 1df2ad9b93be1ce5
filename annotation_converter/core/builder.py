#!/usr/bin/env python3

"""
Incremental construction of the annotation model.

Readers stream records into a ModelBuilder through owned handles
(GeneHandle, TranscriptHandle). Handles are mutable and only live during
ingestion; finalize() turns them into the read-only AnnotationModel and is
the only place where sequence order is imposed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .coordinates import Interval, Strand
from .data_structures import (
    AnnotationModel, CDS_END_KEY, CDS_START_KEY, CODONS_KEY, START_CODON, STOP_CODON, Exon,
    Feature, Gene, Transcript
)
from .exceptions import StructuralConflictError


def _widen(current: Optional[Interval], other: Optional[Interval]) -> Optional[Interval]:
    if current is None:
        return other
    if other is None:
        return current
    return current.widen(other)


def _fill_attributes(target: Dict[str, str], incoming: Optional[Dict[str, str]]) -> None:
    """Copy attributes that are not set yet; set values are never overwritten."""
    if not incoming:
        return
    for key, value in incoming.items():
        target.setdefault(key, value)


@dataclass
class TranscriptHandle:
    """Mutable transcript under construction."""
    id: str
    gene: 'GeneHandle'
    chrom: str
    strand: Strand
    interval: Optional[Interval] = None
    exons: List[Tuple[Interval, Optional[int]]] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    source: str = '.'
    coding: Optional[Interval] = None
    codons: Set[str] = field(default_factory=set)
    features: List[Feature] = field(default_factory=list)


@dataclass
class GeneHandle:
    """Mutable gene under construction."""
    id: str
    chrom: str
    strand: Strand
    name: Optional[str] = None
    interval: Optional[Interval] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    source: str = '.'
    transcripts: List[TranscriptHandle] = field(default_factory=list)


class ModelBuilder:
    """Collect genes, transcripts and exons by ID while records stream in."""

    def __init__(self):
        self.genes: Dict[str, GeneHandle] = {}
        self.transcripts: Dict[str, TranscriptHandle] = {}
        self._features: List[Tuple[Feature, Optional[str]]] = []

    def get_gene(self, gene_id: str) -> Optional[GeneHandle]:
        return self.genes.get(gene_id)

    def get_transcript(self, transcript_id: str) -> Optional[TranscriptHandle]:
        return self.transcripts.get(transcript_id)

    def upsert_gene(self, gene_id: str, chrom: str, strand: Strand,
                    name: Optional[str] = None, interval: Optional[Interval] = None,
                    attributes: Optional[Dict[str, str]] = None,
                    source: Optional[str] = None) -> GeneHandle:
        """
        Return the gene with this ID, creating it on first reference.

        Raises:
            StructuralConflictError: the ID was already seen with a different
                chromosome, a different known strand or a different name.
        """
        if not gene_id:
            raise StructuralConflictError("Gene ID cannot be empty")

        gene = self.genes.get(gene_id)
        if gene is None:
            gene = GeneHandle(id=gene_id, chrom=chrom, strand=strand, name=name,
                              interval=interval, source=source or '.')
            _fill_attributes(gene.attributes, attributes)
            self.genes[gene_id] = gene
            return gene

        # Check every conflict before mutating anything.
        if gene.chrom != chrom:
            raise StructuralConflictError(
                f"Gene {gene_id} seen on {gene.chrom} and {chrom}", entity_id=gene_id)
        if gene.strand.is_known and strand.is_known and gene.strand != strand:
            raise StructuralConflictError(
                f"Gene {gene_id} seen on strands {gene.strand.symbol} and {strand.symbol}",
                entity_id=gene_id)
        if gene.name and name and gene.name != name:
            raise StructuralConflictError(
                f"Gene {gene_id} has conflicting names {gene.name!r} and {name!r}",
                entity_id=gene_id)

        if not gene.strand.is_known:
            gene.strand = strand
        if not gene.name:
            gene.name = name
        if gene.source == '.' and source:
            gene.source = source
        gene.interval = _widen(gene.interval, interval)
        _fill_attributes(gene.attributes, attributes)
        return gene

    def upsert_transcript(self, gene: GeneHandle, transcript_id: str, strand: Strand,
                          interval: Optional[Interval] = None,
                          attributes: Optional[Dict[str, str]] = None,
                          source: Optional[str] = None,
                          chrom: Optional[str] = None) -> TranscriptHandle:
        """
        Return the transcript with this ID, creating it under ``gene``.

        ``chrom`` defaults to the gene's chromosome. A transcript whose
        chromosome or strand disagrees with its gene is accepted here and
        reported by the validator.

        Raises:
            StructuralConflictError: the ID already belongs to another gene, or
                was seen with a different chromosome or known strand.
        """
        if not transcript_id:
            raise StructuralConflictError("Transcript ID cannot be empty", entity_id=gene.id)
        chrom = chrom or gene.chrom

        transcript = self.transcripts.get(transcript_id)
        if transcript is None:
            transcript = TranscriptHandle(id=transcript_id, gene=gene, chrom=chrom,
                                          strand=strand, interval=interval,
                                          source=source or '.')
            _fill_attributes(transcript.attributes, attributes)
            self.transcripts[transcript_id] = transcript
            gene.transcripts.append(transcript)
            if not gene.strand.is_known and strand.is_known:
                gene.strand = strand
            return transcript

        if transcript.gene is not gene:
            raise StructuralConflictError(
                f"Transcript {transcript_id} belongs to gene {transcript.gene.id}, "
                f"not {gene.id}", entity_id=transcript_id)
        if transcript.chrom != chrom:
            raise StructuralConflictError(
                f"Transcript {transcript_id} seen on {transcript.chrom} and {chrom}",
                entity_id=transcript_id)
        if transcript.strand.is_known and strand.is_known and transcript.strand != strand:
            raise StructuralConflictError(
                f"Transcript {transcript_id} seen on strands "
                f"{transcript.strand.symbol} and {strand.symbol}", entity_id=transcript_id)

        if not transcript.strand.is_known:
            transcript.strand = strand
        if transcript.source == '.' and source:
            transcript.source = source
        transcript.interval = _widen(transcript.interval, interval)
        _fill_attributes(transcript.attributes, attributes)
        return transcript

    def add_exon(self, transcript: TranscriptHandle, interval: Interval,
                 index: Optional[int] = None) -> None:
        """Attach an exon; ordering is imposed later by finalize()."""
        transcript.exons.append((interval, index))

    def set_coding_bounds(self, transcript: TranscriptHandle, interval: Interval,
                          feature_type: str = 'CDS') -> None:
        """Widen the coding region envelope of a transcript (CDS, start/stop codons)."""
        transcript.coding = _widen(transcript.coding, interval)
        if feature_type in (START_CODON, STOP_CODON):
            transcript.codons.add(feature_type)

    def add_feature(self, feature: Feature, transcript_id: Optional[str] = None) -> None:
        """Record a non-hierarchical feature; the parent link is resolved on finalize."""
        self._features.append((feature, transcript_id))

    @property
    def feature_count(self) -> int:
        return len(self._features)

    def finalize(self) -> AnnotationModel:
        """
        Freeze the collected records into an AnnotationModel.

        Exons are sorted by genomic start and renumbered, envelopes are
        recomputed bottom-up (exon -> transcript -> gene) and genes are sorted
        per chromosome.
        """
        for feature, transcript_id in self._features:
            owner = self.transcripts.get(transcript_id) if transcript_id else None
            if owner is not None:
                owner.features.append(feature)
        orphans = sorted(
            (feature for feature, transcript_id in self._features
             if not transcript_id or transcript_id not in self.transcripts),
            key=lambda f: (f.chrom, f.interval.start, f.interval.end, f.feature_type))

        by_chrom: Dict[str, List[Gene]] = {}
        for gene in self.genes.values():
            frozen = self._freeze_gene(gene)
            by_chrom.setdefault(frozen.chrom, []).append(frozen)

        chromosomes = {
            chrom: tuple(sorted(by_chrom[chrom], key=lambda g: (g.start, g.end, g.id)))
            for chrom in sorted(by_chrom)
        }
        model = AnnotationModel(chromosomes=chromosomes, features=tuple(orphans))
        logging.debug(f"Finalized model: {model.gene_count} genes, "
                      f"{model.transcript_count} transcripts, {model.exon_count} exons")
        return model

    def _freeze_transcript(self, handle: TranscriptHandle) -> Transcript:
        ordered = sorted(handle.exons, key=lambda e: (e[0].start, e[0].end, e[1] or 0))
        exons = tuple(Exon(interval=iv, index=i) for i, (iv, _) in enumerate(ordered, 1))

        if exons:
            interval = Interval.envelope(exon.interval for exon in exons)
        elif handle.interval is not None:
            interval = handle.interval
        else:
            raise StructuralConflictError(
                f"Transcript {handle.id} has neither exons nor coordinates",
                entity_id=handle.id)

        attributes = dict(handle.attributes)
        if handle.coding is not None:
            attributes.setdefault(CDS_START_KEY, str(handle.coding.start))
            attributes.setdefault(CDS_END_KEY, str(handle.coding.end))
            if handle.codons:
                attributes.setdefault(CODONS_KEY, ','.join(sorted(handle.codons)))

        features = tuple(sorted(handle.features,
                                key=lambda f: (f.interval.start, f.interval.end, f.feature_type)))
        return Transcript(id=handle.id, gene_id=handle.gene.id, chrom=handle.chrom,
                          interval=interval, strand=handle.strand, exons=exons,
                          attributes=attributes, source=handle.source, features=features)

    def _freeze_gene(self, handle: GeneHandle) -> Gene:
        transcripts = tuple(self._freeze_transcript(t) for t in handle.transcripts)

        if transcripts:
            interval = Interval.envelope(t.interval for t in transcripts)
        elif handle.interval is not None:
            interval = handle.interval
        else:
            raise StructuralConflictError(
                f"Gene {handle.id} has neither transcripts nor coordinates",
                entity_id=handle.id)

        return Gene(id=handle.id, chrom=handle.chrom, strand=handle.strand,
                    interval=interval, name=handle.name, transcripts=transcripts,
                    attributes=dict(handle.attributes), source=handle.source)
