#!/usr/bin/env python3

"""
Structural validation of a finalized annotation model.

The validator never stops at the first problem: it walks the whole model and
returns every violation, leaving the decision to proceed to the pipeline.
"""

import logging
from typing import List, Optional, Set

from intervaltree import IntervalTree

from .config import ConversionConfig
from .coordinates import Interval
from .data_structures import AnnotationModel, Gene, Transcript
from .exceptions import ErrorKind
from .report import Issue, Severity


class ModelValidator:
    """Check ordering, containment, non-overlap and ID uniqueness."""

    def __init__(self, config: Optional[ConversionConfig] = None):
        self.config = config or ConversionConfig()

    @property
    def conflict_severity(self) -> Severity:
        if self.config.on_structural_conflict == 'warn':
            return Severity.WARNING
        return Severity.ERROR

    def validate(self, model: AnnotationModel) -> List[Issue]:
        """Validate the whole model and return all violations found."""
        issues: List[Issue] = []
        gene_ids: Set[str] = set()
        transcript_ids: Set[str] = set()

        for gene in model.genes():
            if gene.id in gene_ids:
                issues.append(self._issue(f"Duplicate gene ID {gene.id}", gene.id))
            gene_ids.add(gene.id)

            self._check_gene(gene, issues)

            for transcript in gene.transcripts:
                if transcript.id in transcript_ids:
                    issues.append(self._issue(
                        f"Duplicate transcript ID {transcript.id}", transcript.id))
                transcript_ids.add(transcript.id)
                self._check_transcript(transcript, issues)

        logging.info(f"Validated {len(gene_ids):,} genes and {len(transcript_ids):,} "
                     f"transcripts: {len(issues)} issue(s)")
        return issues

    def _check_gene(self, gene: Gene, issues: List[Issue]) -> None:
        """All transcripts share the gene's chromosome and strand and fit its envelope."""
        for transcript in gene.transcripts:
            if transcript.gene_id != gene.id:
                issues.append(self._issue(
                    f"Transcript {transcript.id} points to gene {transcript.gene_id} "
                    f"but is owned by {gene.id}", transcript.id))
            if transcript.chrom != gene.chrom:
                issues.append(self._issue(
                    f"Transcript {transcript.id} is on {transcript.chrom}, "
                    f"gene {gene.id} is on {gene.chrom}", transcript.id))
            if transcript.strand != gene.strand:
                issues.append(self._issue(
                    f"Transcript {transcript.id} is on strand {transcript.strand.symbol}, "
                    f"gene {gene.id} is on strand {gene.strand.symbol}", transcript.id))
            if not gene.interval.contains(transcript.interval):
                issues.append(self._issue(
                    f"Gene interval {gene.interval} does not cover transcript "
                    f"{transcript.id} ({transcript.interval})", gene.id))

    def _check_transcript(self, transcript: Transcript, issues: List[Issue]) -> None:
        exons = transcript.exons
        if not exons:
            severity = (Severity.WARNING if self.config.empty_transcript_policy == 'warn'
                        else Severity.ERROR)
            issues.append(self._issue(f"Transcript {transcript.id} has no exons",
                                      transcript.id, severity))
            return

        for previous, current in zip(exons, exons[1:]):
            if current.start < previous.start:
                issues.append(self._issue(
                    f"Exons of {transcript.id} are not sorted "
                    f"({previous.interval} before {current.interval})", transcript.id))
                break

        if [exon.index for exon in exons] != list(range(1, len(exons) + 1)):
            issues.append(self._issue(
                f"Exon indices of {transcript.id} are not numbered 1..{len(exons)}",
                transcript.id))

        # IntervalTree intervals are half-open; exons are inclusive.
        tree = IntervalTree()
        for position, exon in enumerate(exons):
            tree.addi(exon.start, exon.end + 1, position)
        for position, exon in enumerate(exons):
            for hit in sorted(tree.overlap(exon.start, exon.end + 1)):
                if hit.data > position:
                    issues.append(self._issue(
                        f"Exons {exon.interval} and {exons[hit.data].interval} of "
                        f"{transcript.id} overlap", transcript.id))

        for exon in exons:
            if not transcript.interval.contains(exon.interval):
                issues.append(self._issue(
                    f"Exon {exon.interval} lies outside transcript {transcript.id} "
                    f"({transcript.interval})", transcript.id))

        envelope = Interval.envelope(exon.interval for exon in exons)
        if envelope != transcript.interval:
            issues.append(self._issue(
                f"Transcript {transcript.id} interval {transcript.interval} is not "
                f"the exon envelope {envelope}", transcript.id))

    def _issue(self, message: str, entity_id: str,
               severity: Optional[Severity] = None) -> Issue:
        return Issue(kind=ErrorKind.STRUCTURAL_CONFLICT,
                     severity=severity or self.conflict_severity,
                     message=message, entity_id=entity_id)
