#!/usr/bin/env python3

"""
File parsers for gene annotations.

Handles GFF3/GTF and refFlat parsing. Both readers stream their input line
by line into a ModelBuilder and collect problems as structured issues
according to the configured policies.

GFF3 links records through explicit ID/Parent attributes, GTF through the
gene_id/transcript_id attributes repeated on every line. Both are reduced
to a GroupingKey first, so the dispatch logic and the model never need to
know which dialect produced a record.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .attributes import GFF3, GTF, detect_dialect, parse_attributes
from .builder import ModelBuilder
from .config import ConversionConfig
from .coordinates import Interval, Strand
from .data_structures import CDS_END_KEY, CDS_START_KEY, Feature
from .exceptions import (
    ConversionError, MalformedRecordError, MissingParentError, StructuralConflictError
)
from .report import Issue, Severity

GFF3_FORMAT = 'gff3'
GTF_FORMAT = 'gtf'
REFFLAT_FORMAT = 'refflat'
SUPPORTED_FORMATS = (GFF3_FORMAT, GTF_FORMAT, REFFLAT_FORMAT)

EXON_TYPE = 'exon'
# Features whose envelope defines the coding region (refFlat cdsStart/cdsEnd).
CODING_TYPES = ('CDS', 'start_codon', 'stop_codon')

GENE_ROLE = 'gene'
TRANSCRIPT_ROLE = 'transcript'
EXON_ROLE = 'exon'
CODING_ROLE = 'coding'
FEATURE_ROLE = 'feature'

_EXTENSIONS = {
    '.gff': GFF3_FORMAT,
    '.gff3': GFF3_FORMAT,
    '.gtf': GTF_FORMAT,
    '.gff2': GTF_FORMAT,
    '.refflat': REFFLAT_FORMAT,
}


def detect_format(file_path: Optional[str] = None,
                  head_lines: Sequence[str] = ()) -> Optional[str]:
    """
    Infer the annotation format from the file extension, then from content.

    Returns one of 'gff3', 'gtf', 'refflat', or None if nothing matches.
    """
    if file_path:
        name = file_path.lower()
        if name.endswith('.gz'):
            name = name[:-3]
        extension = os.path.splitext(name)[1]
        if extension in _EXTENSIONS:
            return _EXTENSIONS[extension]

    for line in head_lines:
        line = line.rstrip('\r\n')
        if line.startswith('##gff-version 3'):
            return GFF3_FORMAT
        if not line.strip() or line.startswith('#'):
            continue
        columns = line.split('\t')
        if len(columns) == 11 and columns[9].rstrip(',').replace(',', '').isdigit():
            return REFFLAT_FORMAT
        if len(columns) == 9:
            return GTF_FORMAT if detect_dialect(columns[8]) == GTF else GFF3_FORMAT
    return None


@dataclass
class GroupingKey:
    """Identifiers linking a record into the gene/transcript hierarchy."""
    own_id: str = ""
    gene_id: str = ""
    transcript_ids: Tuple[str, ...] = ()
    name: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)


class Gff3KeyExtractor:
    """Grouping by the explicit GFF3 ID/Parent hierarchy."""
    dialect = GFF3
    creates_parents = False

    def extract(self, role: str, attributes: Dict[str, str]) -> GroupingKey:
        parents = tuple(p for p in attributes.get('Parent', '').split(',') if p)
        own_id = attributes.get('ID', '')

        if role == GENE_ROLE:
            kept = _without(attributes, ('ID', 'Parent', 'Name'))
            return GroupingKey(own_id=own_id, gene_id=own_id,
                               name=attributes.get('Name') or None, attributes=kept)
        if role == TRANSCRIPT_ROLE:
            kept = _without(attributes, ('ID', 'Parent'))
            return GroupingKey(own_id=own_id, gene_id=parents[0] if parents else "",
                               attributes=kept)
        return GroupingKey(own_id=own_id, transcript_ids=parents)


class GtfKeyExtractor:
    """Grouping by gene_id/transcript_id co-occurrence (no Parent field in GTF)."""
    dialect = GTF
    creates_parents = True

    def __init__(self, gene_id_attribute: str = 'gene_id',
                 transcript_id_attribute: str = 'transcript_id'):
        self.gene_key = gene_id_attribute
        self.transcript_key = transcript_id_attribute

    def extract(self, role: str, attributes: Dict[str, str]) -> GroupingKey:
        gene_id = attributes.get(self.gene_key, '')
        transcript_id = attributes.get(self.transcript_key, '')
        name = attributes.get('gene_name') or None

        if role == GENE_ROLE:
            kept = _without(attributes, (self.gene_key, self.transcript_key, 'gene_name'))
            return GroupingKey(own_id=gene_id, gene_id=gene_id, name=name, attributes=kept)
        kept = _without(attributes, (self.gene_key, self.transcript_key, 'gene_name'))
        return GroupingKey(own_id=transcript_id if role == TRANSCRIPT_ROLE else "",
                           gene_id=gene_id,
                           transcript_ids=(transcript_id,) if transcript_id else (),
                           name=name, attributes=kept)


def _without(attributes: Dict[str, str], keys: Iterable[str]) -> Dict[str, str]:
    excluded = set(keys)
    return {k: v for k, v in attributes.items() if k not in excluded}


@dataclass
class GffRecord:
    """One parsed 9-column line."""
    line_number: int
    raw_line: str
    chrom: str
    source: str
    feature_type: str
    interval: Interval
    strand: Strand
    score: str
    phase: str
    attributes: Dict[str, str]
    dialect: str


@dataclass
class ReadResult:
    """Builder filled by a reader plus the issues found on the way."""
    builder: ModelBuilder
    issues: List[Issue] = field(default_factory=list)
    records_read: int = 0


class AnnotationReader:
    """Shared policy handling for the format readers."""

    format_name = ""

    def __init__(self, config: Optional[ConversionConfig] = None, monitor=None):
        self.config = config or ConversionConfig()
        self.monitor = monitor
        self.builder = ModelBuilder()
        self.issues: List[Issue] = []
        self.records_read = 0

    def read(self, lines: Iterable[str]) -> ReadResult:
        raise NotImplementedError

    def _rename_sequence(self, chrom: str) -> str:
        """Apply the configured left-strip and prefix to a sequence name."""
        lstrip = self.config.seq_name_lstrip
        if lstrip and chrom.startswith(lstrip):
            chrom = chrom[len(lstrip):]
        return f"{self.config.seq_name_prefix}{chrom}"

    def _count_record(self) -> None:
        self.records_read += 1
        if (self.monitor is not None and self.config.enable_memory_monitoring
                and self.records_read % self.config.memory_check_interval == 0):
            self.monitor.record_operations(self.config.memory_check_interval)
            self.monitor.check_memory_limit()

    def _handle_malformed(self, error: MalformedRecordError) -> None:
        """Record a malformed line; re-raise under the abort policy."""
        policy = self.config.on_malformed_record
        severity = Severity.WARNING if policy == 'skip' else Severity.ERROR
        self.issues.append(Issue.from_error(error, severity))
        logging.debug(f"{self.format_name}: {error}")
        if policy == 'abort':
            raise error

    def _handle_structural(self, error: ConversionError, line_number: int = 0,
                           raw_line: str = "") -> None:
        """Record a conflict or missing parent; re-raise under the abort policy."""
        if not error.line_number:
            error.line_number = line_number
            error.raw_line = raw_line
        severity = (Severity.WARNING if self.config.on_structural_conflict == 'warn'
                    else Severity.ERROR)
        self.issues.append(Issue.from_error(error, severity))
        logging.debug(f"{self.format_name}: {error}")
        if self.config.on_structural_conflict == 'abort':
            raise error

    def _numbered(self, lines: Iterable[str]) -> Iterator[Tuple[int, str]]:
        """Enumerate input lines from 1; undecodable input ends the read."""
        line_number = 0
        iterator = iter(lines)
        while True:
            try:
                line = next(iterator)
            except StopIteration:
                return
            except UnicodeDecodeError as e:
                error = MalformedRecordError(f"Input is not valid text: {e}", line_number + 1)
                self.issues.append(Issue.from_error(error, Severity.ERROR))
                raise error
            line_number += 1
            yield line_number, line

    def _result(self) -> ReadResult:
        logging.info(f"Read {self.records_read:,} {self.format_name} records "
                     f"({len(self.builder.genes):,} genes, "
                     f"{len(self.builder.transcripts):,} transcripts)")
        return ReadResult(builder=self.builder, issues=self.issues,
                          records_read=self.records_read)


class GffReader(AnnotationReader):
    """Parse GFF3/GTF records into a ModelBuilder with O(n) complexity."""

    format_name = 'GFF'

    def __init__(self, config: Optional[ConversionConfig] = None, monitor=None,
                 default_dialect: str = GFF3):
        super().__init__(config, monitor)
        self.extractors = {
            GFF3: Gff3KeyExtractor(),
            GTF: GtfKeyExtractor(self.config.gene_id_attribute,
                                 self.config.transcript_id_attribute),
        }
        if self.config.attribute_dialect != 'inferred':
            default_dialect = self.config.attribute_dialect
        self._last_dialect = default_dialect
        self._deferred: List[Tuple[GffRecord, str, GroupingKey]] = []

    def read(self, lines: Iterable[str]) -> ReadResult:
        """
        Stream GFF/GTF lines into the builder.

        Raises:
            MalformedRecordError: on_malformed_record is 'abort', or the input
                cannot be decoded.
            StructuralConflictError, MissingParentError: on_structural_conflict
                is 'abort'.
        """
        for line_number, line in self._numbered(lines):
            line = line.rstrip('\r\n')
            if not line.strip():
                continue
            if line.startswith('##FASTA'):
                # Embedded sequences are not annotation records.
                break
            if line.startswith('#'):
                continue

            try:
                record = self._parse_line(line, line_number)
            except MalformedRecordError as e:
                self._handle_malformed(e)
                continue

            self._count_record()
            try:
                self._dispatch(record)
            except MalformedRecordError as e:
                self._handle_malformed(e)
            except (StructuralConflictError, MissingParentError) as e:
                self._handle_structural(e, line_number, line)

        self._resolve_deferred()
        return self._result()

    def _parse_line(self, line: str, line_number: int) -> GffRecord:
        columns = line.split('\t')
        if len(columns) != 9:
            raise MalformedRecordError(
                f"Expected 9 tab-separated columns, found {len(columns)}", line_number, line)

        chrom, source, feature_type, start, end, score, strand, phase, attr_string = columns
        if not chrom or not feature_type:
            raise MalformedRecordError("Empty seqid or type column", line_number, line)
        try:
            start, end = int(start), int(end)
        except ValueError:
            raise MalformedRecordError(
                f"Non-numeric coordinates: {start!r}, {end!r}", line_number, line)
        if start < 1:
            raise MalformedRecordError(f"Start {start} is not a 1-based coordinate",
                                       line_number, line)
        if start > end:
            raise MalformedRecordError(f"Start {start} is greater than end {end}",
                                       line_number, line)

        dialect = self._dialect_for(attr_string)
        return GffRecord(
            line_number=line_number,
            raw_line=line,
            chrom=self._rename_sequence(chrom),
            source=source,
            feature_type=feature_type,
            interval=Interval(start, end),
            strand=Strand.from_symbol(strand),
            score=score,
            phase=phase,
            attributes=parse_attributes(attr_string, dialect),
            dialect=dialect,
        )

    def _dialect_for(self, attr_string: str) -> str:
        if self.config.attribute_dialect != 'inferred':
            return self.config.attribute_dialect
        dialect = detect_dialect(attr_string)
        if dialect is None:
            return self._last_dialect
        self._last_dialect = dialect
        return dialect

    def _role_of(self, feature_type: str) -> str:
        if feature_type in self.config.gene_types:
            return GENE_ROLE
        if feature_type in self.config.transcript_types:
            return TRANSCRIPT_ROLE
        if feature_type == EXON_TYPE:
            return EXON_ROLE
        if feature_type in CODING_TYPES:
            return CODING_ROLE
        return FEATURE_ROLE

    def _dispatch(self, record: GffRecord) -> None:
        """Route a record to the builder by its type."""
        role = self._role_of(record.feature_type)
        extractor = self.extractors[record.dialect]
        key = extractor.extract(role, record.attributes)

        if role == GENE_ROLE:
            if not key.gene_id:
                raise MalformedRecordError(
                    f"{record.feature_type} record without an identifier",
                    record.line_number, record.raw_line)
            self.builder.upsert_gene(key.gene_id, record.chrom, record.strand,
                                     name=key.name, interval=record.interval,
                                     attributes=key.attributes, source=record.source)
            return

        if role == FEATURE_ROLE:
            self._add_feature(record, key, extractor.creates_parents)
            return

        if extractor.creates_parents:
            self._dispatch_implicit(record, role, key)
        else:
            self._dispatch_explicit(record, role, key)

    def _dispatch_implicit(self, record: GffRecord, role: str, key: GroupingKey) -> None:
        """GTF: every line names its gene and transcript, create them on first sight."""
        transcript = self._ensure_transcript(record, role, key)
        if role == EXON_ROLE:
            self.builder.add_exon(transcript, record.interval,
                                  _exon_number(record.attributes))
        elif role == CODING_ROLE:
            self.builder.set_coding_bounds(transcript, record.interval, record.feature_type)

    def _ensure_transcript(self, record: GffRecord, role: str, key: GroupingKey):
        if not key.gene_id:
            raise MalformedRecordError(
                f"{record.feature_type} record without a "
                f"{self.config.gene_id_attribute} attribute",
                record.line_number, record.raw_line)
        if not key.transcript_ids:
            raise MalformedRecordError(
                f"{record.feature_type} record without a "
                f"{self.config.transcript_id_attribute} attribute",
                record.line_number, record.raw_line)

        transcript_id = key.transcript_ids[0]
        existing = self.builder.get_transcript(transcript_id)
        if existing is not None and existing.gene.id != key.gene_id:
            raise StructuralConflictError(
                f"Transcript {transcript_id} belongs to gene {existing.gene.id}, "
                f"not {key.gene_id}", entity_id=transcript_id)

        gene = self.builder.upsert_gene(key.gene_id, record.chrom, record.strand,
                                        name=key.name, interval=record.interval,
                                        source=record.source)
        # Exon lines redefine the interval on finalize; CDS-only transcripts keep this one.
        return self.builder.upsert_transcript(
            gene, transcript_id, record.strand, interval=record.interval,
            attributes=key.attributes if role == TRANSCRIPT_ROLE else None,
            source=record.source, chrom=record.chrom)

    def _dispatch_explicit(self, record: GffRecord, role: str, key: GroupingKey,
                           deferred: bool = False) -> None:
        """GFF3: link through Parent; unseen parents are deferred or reported."""
        if role == TRANSCRIPT_ROLE:
            if not key.own_id:
                raise MalformedRecordError(
                    f"{record.feature_type} record without an ID attribute",
                    record.line_number, record.raw_line)
            if not key.gene_id:
                raise MissingParentError(
                    f"{record.feature_type} {key.own_id} has no Parent attribute",
                    entity_id=key.own_id)
            gene = self.builder.get_gene(key.gene_id)
            if gene is None:
                self._missing_parent(record, role, key, key.own_id, key.gene_id, deferred)
                return
            self.builder.upsert_transcript(gene, key.own_id, record.strand,
                                           interval=record.interval,
                                           attributes=key.attributes,
                                           source=record.source, chrom=record.chrom)
            return

        if not key.transcript_ids:
            raise MissingParentError(
                f"{record.feature_type} record has no Parent attribute",
                entity_id=key.own_id)

        missing = []
        for transcript_id in key.transcript_ids:
            transcript = self.builder.get_transcript(transcript_id)
            if transcript is None:
                missing.append(transcript_id)
            elif role == EXON_ROLE:
                self.builder.add_exon(transcript, record.interval)
            else:
                self.builder.set_coding_bounds(transcript, record.interval, record.feature_type)

        # Resolved parents are linked above even when others are still unknown.
        for transcript_id in missing:
            single = GroupingKey(own_id=key.own_id, transcript_ids=(transcript_id,))
            self._missing_parent(record, role, single, key.own_id or record.feature_type,
                                 transcript_id, deferred)

    def _missing_parent(self, record: GffRecord, role: str, key: GroupingKey,
                        entity_id: str, parent_id: str, deferred: bool) -> None:
        if self.config.allow_out_of_order_parents and not deferred:
            self._deferred.append((record, role, key))
            return
        raise MissingParentError(
            f"{record.feature_type} {entity_id} references unknown parent {parent_id}",
            entity_id=entity_id, parent_id=parent_id,
            line_number=record.line_number, raw_line=record.raw_line)

    def _resolve_deferred(self) -> None:
        """Second pass over records whose parent appeared later in the file."""
        if not self._deferred:
            return
        logging.debug(f"Resolving {len(self._deferred)} out-of-order records")
        # Transcripts first, so that deferred exons can find them.
        pending = sorted(self._deferred, key=lambda item: item[1] != TRANSCRIPT_ROLE)
        self._deferred = []
        for record, role, key in pending:
            try:
                self._dispatch_explicit(record, role, key, deferred=True)
            except (StructuralConflictError, MissingParentError) as e:
                self._handle_structural(e, record.line_number, record.raw_line)

    def _add_feature(self, record: GffRecord, key: GroupingKey, creates_parents: bool) -> None:
        """Keep a non-hierarchical record, linked to its transcript when it has one."""
        feature = Feature(
            chrom=record.chrom,
            source=record.source,
            feature_type=record.feature_type,
            interval=record.interval,
            strand=record.strand,
            score=record.score,
            phase=record.phase,
            attributes=dict(record.attributes),
            line_number=record.line_number,
        )
        if not key.transcript_ids:
            self.builder.add_feature(feature)
            return
        if creates_parents and key.gene_id:
            self._ensure_transcript(record, FEATURE_ROLE, key)
        for transcript_id in key.transcript_ids:
            self.builder.add_feature(feature, transcript_id)


def _exon_number(attributes: Dict[str, str]) -> Optional[int]:
    value = attributes.get('exon_number', '')
    return int(value) if value.isdigit() else None


class RefFlatReader(AnnotationReader):
    """Parse refFlat lines; each line fully describes one transcript."""

    format_name = 'refFlat'
    column_count = 11

    def read(self, lines: Iterable[str]) -> ReadResult:
        """
        Stream refFlat lines into the builder.

        Raises:
            MalformedRecordError: on_malformed_record is 'abort', or the input
                cannot be decoded.
            StructuralConflictError, MissingParentError: on_structural_conflict
                is 'abort'.
        """
        for line_number, line in self._numbered(lines):
            line = line.rstrip('\r\n')
            if not line.strip() or line.startswith('#'):
                continue
            self._count_record()
            try:
                self._parse_line(line, line_number)
            except MalformedRecordError as e:
                self._handle_malformed(e)
            except StructuralConflictError as e:
                self._handle_structural(e, line_number, line)
        return self._result()

    def _parse_line(self, line: str, line_number: int) -> None:
        columns = line.split('\t')
        if len(columns) != self.column_count:
            raise MalformedRecordError(
                f"Expected {self.column_count} tab-separated columns, found {len(columns)}",
                line_number, line)

        (gene_name, transcript_id, chrom, strand, tx_start, tx_end,
         cds_start, cds_end, exon_count, exon_starts, exon_ends) = columns
        if not gene_name:
            raise MalformedRecordError("Empty gene name column", line_number, line)
        if not transcript_id:
            raise MalformedRecordError("Empty transcript name column", line_number, line)

        try:
            tx_start, tx_end = int(tx_start), int(tx_end)
            cds_start, cds_end = int(cds_start), int(cds_end)
            exon_count = int(exon_count)
        except ValueError as e:
            raise MalformedRecordError(f"Non-numeric column value: {e}", line_number, line)

        starts = self._parse_coordinate_list(exon_starts, 'exonStarts', line_number, line)
        ends = self._parse_coordinate_list(exon_ends, 'exonEnds', line_number, line)
        if exon_count != len(starts) or exon_count != len(ends):
            raise MalformedRecordError(
                f"exonCount {exon_count} does not match {len(starts)} exon starts "
                f"and {len(ends)} exon ends", line_number, line)

        tx_interval = self._interval(tx_start, tx_end, 'transcript', line_number, line)
        if cds_start < 0 or cds_start > cds_end:
            raise MalformedRecordError(f"Invalid CDS bounds {cds_start}-{cds_end}",
                                       line_number, line)
        exons = [self._interval(s, e, 'exon', line_number, line) for s, e in zip(starts, ends)]

        if self.builder.get_transcript(transcript_id) is not None:
            raise StructuralConflictError(
                f"Duplicate transcript {transcript_id}", entity_id=transcript_id)

        chrom = self._rename_sequence(chrom)
        strand = Strand.from_symbol(strand)
        gene = self.builder.upsert_gene(gene_name, chrom, strand, interval=tx_interval)
        transcript = self.builder.upsert_transcript(
            gene, transcript_id, strand, interval=tx_interval, chrom=chrom,
            # Empty CDS (cdsStart == cdsEnd) is kept as cds_start > cds_end.
            attributes={CDS_START_KEY: str(cds_start + 1), CDS_END_KEY: str(cds_end)})
        for index, exon in enumerate(exons, 1):
            self.builder.add_exon(transcript, exon, index)

    @staticmethod
    def _parse_coordinate_list(text: str, column: str, line_number: int,
                               line: str) -> List[int]:
        values = text.split(',')
        if values and values[-1] == '':
            values = values[:-1]
        try:
            return [int(value) for value in values]
        except ValueError:
            raise MalformedRecordError(f"Invalid {column} list: {text!r}", line_number, line)

    @staticmethod
    def _interval(start: int, end: int, what: str, line_number: int, line: str) -> Interval:
        """Convert 0-based half-open bounds, rejecting empty or inverted ones."""
        if start < 0 or start >= end:
            raise MalformedRecordError(f"Invalid {what} bounds {start}-{end}",
                                       line_number, line)
        return Interval.from_zero_based_half_open(start, end)


def get_reader(input_format: str, config: Optional[ConversionConfig] = None,
               monitor=None) -> AnnotationReader:
    """Reader instance for a format name."""
    if input_format == REFFLAT_FORMAT:
        return RefFlatReader(config, monitor)
    if input_format == GTF_FORMAT:
        return GffReader(config, monitor, default_dialect=GTF)
    if input_format == GFF3_FORMAT:
        return GffReader(config, monitor, default_dialect=GFF3)
    raise ValueError(f"Unsupported input format: {input_format}")
