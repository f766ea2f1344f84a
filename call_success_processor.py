# Call Success Processor
# This module filters call detail records by duration range and phone number and
# counts how many of the matching calls completed successfully.

import itertools
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger("CallSuccessReport")

# Largest duration representable in seconds (unsigned 64-bit)
DURATION_MAX = int(np.iinfo(np.uint64).max)

# Rows pulled from the source per DataFrame, same as the driver page size
DEFAULT_CHUNK_SIZE = 5000

DURATION_COLUMN = 'duration'
PHONE_NUMBER_COLUMN = 'user_phone_number'
SUCCESS_COLUMN = 'call_successfully_completed'

_DURATION_PART = re.compile(r'\+?[0-9]+')


class CallReportError(Exception):
    """Base class for every fatal condition of a report run."""


class DurationParseError(CallReportError):
    """A duration text is not in the "hours:minutes:seconds" form."""


class MissingColumnError(CallReportError):
    """A column the report reads is absent from the call records."""


class MissingValueError(CallReportError):
    """A column the report reads holds a null for a record it must read."""


class ConfigurationError(CallReportError):
    """The connection settings cannot be used."""


# Position of an unreadable record and the error it causes
Problem = Tuple[int, CallReportError]


def parse_duration(text: Any) -> Optional[int]:
    """
    Convert "hours:minutes:seconds" text to a number of seconds.

    Minutes and seconds are not range-checked, so "0:90:90" gives 5490.
    Anything after the third part is ignored.

    Args:
        text: Duration text

    Returns:
        Total seconds, or None if the text cannot be parsed
    """
    if not isinstance(text, str):
        return None

    parts = text.split(':')
    if len(parts) < 3:
        return None

    values = []
    for part in parts[:3]:
        if not _DURATION_PART.fullmatch(part):
            return None
        values.append(int(part))

    hours, minutes, seconds = values
    total = hours * 3600 + minutes * 60 + seconds
    if total > DURATION_MAX:
        return None
    return total


def require_duration(text: Any, source: str) -> int:
    """
    Same as parse_duration but raises DurationParseError on failure.

    Args:
        text: Duration text
        source: Where the text came from, used in the error message

    Returns:
        Total seconds
    """
    seconds = parse_duration(text)
    if seconds is None:
        raise DurationParseError(
            f"Failed to parse duration from {source}: {text!r} "
            f"(expected \"hours:minutes:seconds\")"
        )
    return seconds


@dataclass(frozen=True)
class FilterCriteria:
    """Optional phone number filter and inclusive duration range in seconds."""

    user_phone_number: Optional[str] = None
    duration_min: int = 0
    duration_max: int = DURATION_MAX

    @classmethod
    def from_text(cls,
                  user_phone_number: Optional[str] = None,
                  duration_min: Optional[str] = None,
                  duration_max: Optional[str] = None) -> 'FilterCriteria':
        """
        Build criteria from command line values.

        Args:
            user_phone_number: Phone number to match exactly
            duration_min: Lower bound as "hours:minutes:seconds"
            duration_max: Upper bound as "hours:minutes:seconds"

        Returns:
            FilterCriteria with unset bounds left at their defaults
        """
        minimum = 0
        maximum = DURATION_MAX
        if duration_min is not None:
            minimum = require_duration(duration_min, "the input `duration_min`")
        if duration_max is not None:
            maximum = require_duration(duration_max, "the input `duration_max`")

        return cls(user_phone_number=user_phone_number,
                   duration_min=minimum,
                   duration_max=maximum)


@dataclass(frozen=True)
class AggregationResult:
    """Tally of calls passing the filters and the successful ones among them."""

    matched_count: int = 0
    successful_count: int = 0

    def __add__(self, other: 'AggregationResult') -> 'AggregationResult':
        """
        Combine the tallies of two consecutive chunks.

        Args:
            other: Tally of the next chunk

        Returns:
            New AggregationResult with both counters summed
        """
        return AggregationResult(
            matched_count=self.matched_count + other.matched_count,
            successful_count=self.successful_count + other.successful_count,
        )

    @property
    def ratio(self) -> np.float32:
        """
        Share of matched calls that were successful.

        Returns:
            Single precision ratio, NaN when nothing matched
        """
        # 0 / 0 is NaN on purpose, there is no special case for no matches
        with np.errstate(invalid='ignore', divide='ignore'):
            return np.float32(self.successful_count) / np.float32(self.matched_count)

    def format_summary(self) -> str:
        """
        Render the report line.

        Returns:
            "<successful> / <matched> (<ratio>) calls were successful", ratio to 2 decimals
        """
        ratio = self.ratio
        ratio_text = 'NaN' if np.isnan(ratio) else f"{ratio:.2f}"
        return (f"{self.successful_count} / {self.matched_count} "
                f"({ratio_text}) calls were successful")


class CallSuccessProcessor:
    """
    A class for computing the call success ratio over a stream of call records.
    """

    def __init__(self, criteria: Optional[FilterCriteria] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the processor with filter criteria.

        Args:
            criteria: Filters to apply, no filtering when omitted
            chunk_size: Number of records loaded into each DataFrame
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.criteria = criteria or FilterCriteria()
        self.chunk_size = chunk_size

    def iter_chunks(self, records: Iterable[Any]) -> Iterator[pd.DataFrame]:
        """
        Pull records lazily and yield them as DataFrames, preserving order.

        Args:
            records: Mappings or namedtuples keyed by column name

        Yields:
            One DataFrame per chunk, indexed by position in the record stream
        """
        iterator = iter(records)
        offset = 0
        while True:
            chunk: List[Any] = list(itertools.islice(iterator, self.chunk_size))
            if not chunk:
                return

            df = pd.DataFrame(chunk)
            df.index = pd.RangeIndex(offset, offset + len(chunk))
            offset += len(chunk)
            logger.debug(f"Loaded {len(df)} records (through record {offset})")
            yield df

    def _find_problem(self, df: pd.DataFrame, column: str,
                      mask: pd.Series) -> Optional[Problem]:
        """
        Locate the first record selected by mask whose column cannot be read.

        Args:
            df: Chunk of call records
            column: Column the selected records need
            mask: Records that read the column

        Returns:
            (position, error) of the first unreadable record, or None
        """
        if not mask.any():
            return None

        if column not in df.columns:
            position = int(mask.idxmax())
            return position, MissingColumnError(
                f"Column `{column}` not found in the table (record {position})"
            )

        missing = mask & df[column].isna()
        if missing.any():
            position = int(missing.idxmax())
            return position, MissingValueError(f"Column `{column}` is null for record {position}")

        return None

    def parse_durations(self, df: pd.DataFrame) -> Tuple[pd.Series, pd.Series]:
        """
        Convert the duration column of a chunk to seconds.

        Args:
            df: Chunk of call records, with a duration column

        Returns:
            Tuple containing:
            - Series of unsigned 64-bit durations, 0 where parsing failed
            - Boolean Series, True where parsing failed
        """
        parsed = [parse_duration(text) for text in df[DURATION_COLUMN]]
        failed = pd.Series([seconds is None for seconds in parsed], index=df.index, dtype=bool)
        durations = pd.Series([0 if seconds is None else seconds for seconds in parsed],
                              index=df.index, dtype=np.uint64)
        return durations, failed

    def filter_records(self, df: pd.DataFrame) -> Tuple[pd.Series, List[Problem]]:
        """
        Build the mask of matched records and collect every unreadable record.

        Each column is only required for the records that reach the step
        reading it: durations for all, phone numbers for records in range,
        success flags for matched records.

        Args:
            df: Chunk of call records

        Returns:
            Tuple containing:
            - Boolean Series, True for matched records
            - List of (position, error) for records that cannot be read
        """
        if DURATION_COLUMN not in df.columns:
            raise MissingColumnError(
                f"Column `{DURATION_COLUMN}` not found in the table (record {df.index[0]})"
            )

        problems: List[Problem] = []
        durations, failed = self.parse_durations(df)
        if failed.any():
            position = int(failed.idxmax())
            problems.append((position, DurationParseError(
                f"Failed to parse duration from table at record {position}: "
                f"{df.at[position, DURATION_COLUMN]!r}"
            )))

        mask = (~failed
                & (durations >= np.uint64(self.criteria.duration_min))
                & (durations <= np.uint64(self.criteria.duration_max)))

        phone_number = self.criteria.user_phone_number
        if phone_number is not None:
            problem = self._find_problem(df, PHONE_NUMBER_COLUMN, mask)
            if problem:
                problems.append(problem)
            if PHONE_NUMBER_COLUMN in df.columns:
                mask &= df[PHONE_NUMBER_COLUMN].notna() & (df[PHONE_NUMBER_COLUMN] == phone_number)
            else:
                mask = pd.Series(False, index=df.index)

        problem = self._find_problem(df, SUCCESS_COLUMN, mask)
        if problem:
            problems.append(problem)

        return mask, problems

    def aggregate_chunk(self, df: pd.DataFrame) -> AggregationResult:
        """
        Count matched and successful calls in a single chunk.

        When several records are malformed, the error of the earliest one is raised.

        Args:
            df: Chunk of call records

        Returns:
            AggregationResult for the chunk
        """
        mask, problems = self.filter_records(df)
        if problems:
            raise min(problems, key=lambda problem: problem[0])[1]

        matched_count = int(mask.sum())
        if matched_count == 0:
            return AggregationResult()

        successful_count = int(df.loc[mask, SUCCESS_COLUMN].astype(bool).sum())
        return AggregationResult(matched_count=matched_count,
                                 successful_count=successful_count)

    def process_records(self, records: Iterable[Any]) -> AggregationResult:
        """
        Run the filter-and-count pass over all records.

        Any malformed record stops the pass and no partial result is returned.

        Args:
            records: Call records in query order

        Returns:
            Final AggregationResult
        """
        result = AggregationResult()
        try:
            for df in self.iter_chunks(records):
                chunk_result = self.aggregate_chunk(df)
                logger.debug(f"Chunk matched {chunk_result.matched_count} calls, "
                             f"{chunk_result.successful_count} successful")
                result = result + chunk_result
        except CallReportError as e:
            logger.error(f"Error processing call records: {str(e)}")
            raise

        logger.info(f"Matched {result.matched_count} calls, "
                    f"{result.successful_count} successful")
        return result
