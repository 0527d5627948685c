# /// script
# requires-python = "==3.12.*"
# dependencies = [
#   "httpx~=0.28.0",
#   "tqdm",
#   "humanize"
# ]
# ///

"""
Downloads device patches for one platform from the patchstorage catalog API.
It's server-friendly, in that it makes synchronous requests with a slight sleep,
  retries transient failures with exponential backoff, and skips patches already on disk.

For SysEx platforms, each downloaded file is trimmed to its first complete
  SysEx message (0xF0 ... 0xF7), dropping any leading or trailing noise bytes.

Usage:
  uv run ./download_patches.py --output-dir "../patches" --platform meris-lvx --test-limit 4

Args:
  --output-dir (optional, defaults to `out`; must already exist)
  --platform (optional, defaults to `meris-lvx`)
  --overwrite (optional) -- re-download patches whose file already exists
  --continue-on-error (optional) -- log and skip a patch that fails, instead of aborting the run
  --file-selection (optional) -- `first` or `match-extension`
  --max-attempts (optional) -- attempts per request before giving up
  --base-url (optional) -- catalog api root
  --test-limit (optional) -- convenient for testing
"""

import argparse
import logging
import os
import random
import re
import time
from collections import Counter
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import httpx
import humanize
from tqdm import tqdm

__version__ = '0.3.0'

## setup logging ----------------------------------------------------
log_level_name: str = os.getenv('LOG_LEVEL', 'INFO').upper()
log_level = getattr(
    logging, log_level_name, logging.INFO
)  # maps the string name to the corresponding logging level constant; defaults to INFO
logging.basicConfig(
    level=log_level,
    format='[%(asctime)s] %(levelname)s [%(module)s-%(funcName)s()::%(lineno)d] %(message)s',
    datefmt='%d/%b/%Y %H:%M:%S',
)
log = logging.getLogger(__name__)
## prevent httpx from logging
if log_level <= logging.INFO:
    for noisy in ('httpx', 'httpcore'):
        lg = logging.getLogger(noisy)
        lg.setLevel(logging.WARNING)
        lg.propagate = False  # don't bubble up to root


## constants --------------------------------------------------------
DEFAULT_BASE_URL: str = 'https://patchstorage.com/api/beta'
REQUEST_PAUSE_SECONDS: float = 0.2  # polite pause before every request
USER_AGENT: str = f'patch-downloader/{__version__}'

START_BYTE: int = 0xF0  # SysEx start; also the lowest "system message" status byte
END_BYTE: int = 0xF7  # SysEx end

## per-entry outcomes
WRITTEN = 'written'
SKIPPED_EXISTING = 'skipped_existing'
SKIPPED_EXTENSION = 'skipped_extension'
FAILED = 'failed'


## errors -----------------------------------------------------------
class PatchDownloadError(Exception):
    """
    Base class for failures raised while paging, fetching, or decoding patches.
    """


class MissingLinkHeaderError(PatchDownloadError):
    """
    The list response carried no `Link` header, so there's no way to know whether more pages exist.
    """


class LinkHeaderParseError(PatchDownloadError):
    """
    The `Link` header was present but not in `<url>; rel="name"` form.
    """


class ResponseDecodeError(PatchDownloadError):
    """
    A response body was not valid JSON, or lacked a field of the expected type.
    """


class EmptyFileListError(PatchDownloadError):
    """
    A patch's metadata listed no downloadable files.
    """


class RetriesExhaustedError(PatchDownloadError):
    """
    Every attempt at a request failed with a transient error.
    The last transient error is chained as `__cause__`.
    """

    def __init__(self, url: str, attempts: int, last_error: Exception | None = None) -> None:
        self.url: str = url
        self.attempts: int = attempts
        self.last_error: Exception | None = last_error
        super().__init__(f'giving up on ``{url}`` after {attempts} attempt(s); last error: {last_error}')


## sysex frame extraction -------------------------------------------
def find_sysex_frame(data: bytes) -> tuple[int, int] | None:
    """
    Locates the first SysEx message in `data` and returns its inclusive (start, end) offsets.

    Returns None ("no match") when:
    - there's no system-message byte (>= 0xF0) at all
    - the first system-message byte is something other than 0xF0
    - there's no 0xF7 after the start byte
    - the message already spans the whole buffer, so there'd be nothing to trim

    Called by: trim_sysex_frame()
    """
    start: int | None = None
    for i, byte in enumerate(data):
        if byte >= START_BYTE:
            start = i
            break
    if start is None or data[start] != START_BYTE:
        return None
    end: int = data.find(END_BYTE, start + 1)
    if end == -1:
        return None
    if start == 0 and end == len(data) - 1:
        return None  # unchanged
    return (start, end)


def trim_sysex_frame(data: bytes) -> bytes | None:
    """
    Returns the first SysEx message in `data`, or None if there's nothing to extract or trim.
    """
    found: tuple[int, int] | None = find_sysex_frame(data)
    if found is None:
        return None
    start, end = found
    return data[start : end + 1]


## link header ------------------------------------------------------
_LINK_ENTRY_RE = re.compile(r'<(?P<url>[^<>]*)>(?P<params>.*)', re.DOTALL)


def _split_unquoted(value: str, sep: str) -> list[str]:
    """
    Splits `value` on `sep`, ignoring separators inside `<...>` or inside double quotes.
    Called by: parse_link_header()
    """
    parts: list[str] = []
    current: list[str] = []
    in_angle: bool = False
    in_quote: bool = False
    escaped: bool = False
    for char in value:
        if escaped:
            escaped = False
        elif in_angle:
            in_angle = char != '>'
        elif in_quote:
            if char == '\\':
                escaped = True
            elif char == '"':
                in_quote = False
        elif char == '"':
            in_quote = True
        elif char == '<':
            in_angle = True
        elif char == sep:
            parts.append(''.join(current))
            current = []
            continue
        current.append(char)
    if in_quote or in_angle:
        raise LinkHeaderParseError(f'unterminated quote or `<` in Link header, ``{value}``')
    parts.append(''.join(current))
    return parts


def parse_link_header(value: str) -> dict[str, str]:
    """
    Parses a `Link` header into a dict of relation-name -> url.

    Example input:
      <https://patchstorage.com/api/beta/patches/?page=1>; rel="prev", <https://patchstorage.com/api/beta/patches/?page=3>; rel="next"
    Example output:
      {'prev': 'https://patchstorage.com/api/beta/patches/?page=1', 'next': 'https://patchstorage.com/api/beta/patches/?page=3'}

    Relation names are lowercased; a `rel` may hold several space-separated names.
    Entries without a `rel` are accepted and ignored, as are empty entries (eg a trailing comma).
    Quoted parameter values may contain commas and semicolons.
    """
    entries: list[str] = [e.strip() for e in _split_unquoted(value, ',')]
    entries = [e for e in entries if e]
    if not entries:
        raise LinkHeaderParseError(f'empty Link header, ``{value}``')
    links: dict[str, str] = {}
    for entry in entries:
        match: re.Match[str] | None = _LINK_ENTRY_RE.fullmatch(entry)
        if match is None:
            raise LinkHeaderParseError(f'cannot parse Link entry ``{entry}`` in Link header, ``{value}``')
        url: str = match.group('url').strip()
        params: str = match.group('params').strip()
        if params and not params.startswith(';'):
            raise LinkHeaderParseError(f'expected `;` after ``<{url}>`` in Link header, ``{value}``')
        for param in _split_unquoted(params, ';')[1:]:
            param = param.strip()
            if not param:
                continue
            key, sep, raw_val = param.partition('=')
            if not sep:
                raise LinkHeaderParseError(f'malformed link parameter ``{param}`` in Link header, ``{value}``')
            if key.strip().lower() == 'rel':
                for rel in raw_val.strip().strip('"').split():
                    links[rel.lower()] = url
    return links


def has_next_page(headers: httpx.Headers) -> bool:
    """
    Returns True if the response's `Link` header advertises a `next` relation.
    A missing header is an error, not "no more pages".
    Called by: PatchCatalogPager.fetch_page()
    """
    link_value: str | None = headers.get('link')
    if link_value is None:
        raise MissingLinkHeaderError('missing Link header')
    return 'next' in parse_link_header(link_value)


## http -------------------------------------------------------------
@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff settings for ResilientTransport.
    Delay before retry k is `base_delay * multiplier ** (k - 1)`, capped at `max_delay`, plus up to `jitter` seconds.
    Every 5xx is transient; `retry_statuses` adds the sub-500 statuses that are too (429 by default).
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 15.0
    jitter: float = 0.0
    retry_statuses: frozenset[int] = field(default_factory=lambda: frozenset({429}))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f'max_attempts must be >= 1, got {self.max_attempts}')
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError('delays must be non-negative')
        if self.multiplier < 1:
            raise ValueError(f'multiplier must be >= 1, got {self.multiplier}')

    def delay_for(self, attempt: int) -> float:
        delay: float = min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def is_transient(self, status_code: int) -> bool:
        return status_code >= 500 or status_code in self.retry_statuses


def decode_json(resp: httpx.Response) -> object:
    """
    Decodes a response body as JSON, raising ResponseDecodeError on malformed content.
    """
    try:
        return resp.json()
    except ValueError as exc:
        raise ResponseDecodeError(f'malformed JSON from ``{resp.request.url}``: {exc}') from exc


class ResilientTransport:
    """
    Runs GET requests with retries and exponential backoff.
    - Treats network errors, timeouts, 429 and 5xx responses as transient, and retries them.
    - Raises other 4xx responses immediately as httpx.HTTPStatusError.
    - Raises RetriesExhaustedError after the last attempt, chained from the last transient failure.
    - Sleeps briefly before each attempt to stay polite to the server.
    - Keeps no state between calls; the attempt counter lives in each call.
    """

    def __init__(
        self,
        client: httpx.Client,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        request_pause: float = REQUEST_PAUSE_SECONDS,
    ) -> None:
        self.client: httpx.Client = client
        self.policy: RetryPolicy = policy if policy is not None else RetryPolicy()
        self.sleep: Callable[[float], None] = sleep
        self.request_pause: float = request_pause

    def get(self, url: str, params: dict[str, object] | None = None) -> httpx.Response:
        last_exc: Exception | None = None
        max_tries: int = self.policy.max_attempts
        for attempt in range(1, max_tries + 1):
            if self.request_pause:
                self.sleep(self.request_pause)
            try:
                resp: httpx.Response = self.client.get(url, params=params, follow_redirects=True)
            except httpx.TransportError as exc:
                last_exc = exc
            else:
                if not self.policy.is_transient(resp.status_code):
                    resp.raise_for_status()
                    return resp
                last_exc = httpx.HTTPStatusError(
                    f'transient error {resp.status_code}', request=resp.request, response=resp
                )
            if attempt < max_tries:
                delay: float = self.policy.delay_for(attempt)
                log.warning(f'attempt {attempt}/{max_tries} for ``{url}`` failed ({last_exc}); retrying in {delay:.1f}s')
                self.sleep(delay)
        raise RetriesExhaustedError(url, max_tries, last_exc) from last_exc

    def get_json(self, url: str, params: dict[str, object] | None = None) -> object:
        return decode_json(self.get(url, params=params))


## catalog records --------------------------------------------------
def _require(data: object, key: str, kind: type, context: str):
    """
    Returns `data[key]` if it's of type `kind`; raises ResponseDecodeError otherwise.
    Booleans don't count as ints.
    """
    if not isinstance(data, dict):
        raise ResponseDecodeError(f'{context}: expected a JSON object, got ``{data!r}``')
    value: object = data.get(key)
    if kind is int:
        ok: bool = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, kind)
    if not ok:
        raise ResponseDecodeError(f'{context}: expected `{key}` of type {kind.__name__}, got ``{value!r}``')
    return value


@dataclass(frozen=True)
class PageRequest:
    platform: int
    page: int = 1

    def next(self) -> 'PageRequest':
        return PageRequest(platform=self.platform, page=self.page + 1)


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    slug: str

    @classmethod
    def from_json(cls, data: object) -> 'CatalogEntry':
        patch_id: int = _require(data, 'id', int, 'catalog entry')
        slug: str = _require(data, 'slug', str, 'catalog entry')
        if patch_id < 0:
            raise ResponseDecodeError(f'catalog entry: expected unsigned patch id, got {patch_id}')
        if not slug:
            raise ResponseDecodeError(f'catalog entry {patch_id}: empty slug')
        ## slug becomes a filename in the output directory
        if '/' in slug or '\\' in slug or slug in ('.', '..') or '\x00' in slug:
            raise ResponseDecodeError(f'catalog entry {patch_id}: slug ``{slug}`` is not a plain filename')
        return cls(id=patch_id, slug=slug)


@dataclass(frozen=True)
class PageResult:
    entries: tuple[CatalogEntry, ...]
    has_next: bool


@dataclass(frozen=True)
class PatchFileRef:
    id: int
    url: str
    filesize: int
    filename: str

    @classmethod
    def from_json(cls, data: object) -> 'PatchFileRef':
        return cls(
            id=_require(data, 'id', int, 'patch file'),
            url=_require(data, 'url', str, 'patch file'),
            filesize=_require(data, 'filesize', int, 'patch file'),
            filename=_require(data, 'filename', str, 'patch file'),
        )


@dataclass(frozen=True)
class PatchMetadata:
    id: int
    url: str
    slug: str
    title: str
    content: str
    files: tuple[PatchFileRef, ...]

    @classmethod
    def from_json(cls, data: object) -> 'PatchMetadata':
        context: str = 'patch metadata'
        raw_files: list[object] = _require(data, 'files', list, context)
        return cls(
            id=_require(data, 'id', int, context),
            url=_require(data, 'url', str, context),
            slug=_require(data, 'slug', str, context),
            title=_require(data, 'title', str, context),
            content=_require(data, 'content', str, context),
            files=tuple(PatchFileRef.from_json(f) for f in raw_files),
        )


@dataclass(frozen=True)
class PlatformConfig:
    """
    One target device: its catalog platform id, the file extension its patches use,
    and whether those files are SysEx dumps that should be trimmed.
    """

    name: str
    platform_id: int
    extension: str
    sysex: bool = False


PLATFORMS: dict[str, PlatformConfig] = {
    'meris-lvx': PlatformConfig(name='meris-lvx', platform_id=8008, extension='syx', sysex=True),
}


## paging -----------------------------------------------------------
class PatchCatalogPager:
    """
    Lazily walks the catalog's patch list for one platform, one page at a time.
    - Starts from the given PageRequest (page 1 by default) and holds the current request in `self.request`.
    - Decides whether to continue from the `Link` header, not the body.
    - Requests pages strictly in order; yields each PageResult before fetching the next.
    - Stops after the first page without a `next` link; any failure propagates and ends iteration.
    - Is single-use; build a new pager to start over.
    """

    def __init__(self, transport: ResilientTransport, request: PageRequest, base_url: str = DEFAULT_BASE_URL) -> None:
        self.transport: ResilientTransport = transport
        self.request: PageRequest | None = request
        self.base_url: str = base_url.rstrip('/')

    def list_url(self) -> str:
        return f'{self.base_url}/patches/'

    def fetch_page(self, request: PageRequest) -> PageResult:
        params: dict[str, object] = {'platforms': request.platform, 'page': request.page}
        log.debug(f'fetching page, ``{params}``')
        resp: httpx.Response = self.transport.get(self.list_url(), params=params)
        has_next: bool = has_next_page(resp.headers)
        payload: object = decode_json(resp)
        if not isinstance(payload, list):
            raise ResponseDecodeError(f'patch list page {request.page}: expected a JSON array, got ``{payload!r}``')
        entries: tuple[CatalogEntry, ...] = tuple(CatalogEntry.from_json(item) for item in payload)
        return PageResult(entries=entries, has_next=has_next)

    def __iter__(self) -> Iterator[PageResult]:
        while self.request is not None:
            current: PageRequest = self.request
            result: PageResult = self.fetch_page(current)
            log.info(f'page {current.page}: {len(result.entries)} patch(es); more pages: {result.has_next}')
            self.request = current.next() if result.has_next else None
            yield result

    def entries(self) -> Iterator[CatalogEntry]:
        for page in self:
            yield from page.entries


## file selection ---------------------------------------------------
def has_extension(filename: str, extension: str) -> bool:
    """
    Checks the final extension of `filename` against `extension`, case-sensitively.
    eg `patch.tar.gz` has extension `gz`; `patch` has none.
    """
    return PurePosixPath(filename).suffix == f'.{extension}'


def select_first_file(files: Sequence[PatchFileRef], extension: str) -> PatchFileRef | None:
    """
    Picks the first listed file, whatever its extension; the caller checks the extension.
    """
    if not files:
        raise EmptyFileListError('patch has no files')
    return files[0]


def select_matching_file(files: Sequence[PatchFileRef], extension: str) -> PatchFileRef | None:
    """
    Picks the first listed file with the wanted extension, or None if none has it.
    """
    if not files:
        raise EmptyFileListError('patch has no files')
    return next((f for f in files if has_extension(f.filename, extension)), None)


FILE_SELECTORS: dict[str, Callable[[Sequence[PatchFileRef], str], PatchFileRef | None]] = {
    'first': select_first_file,
    'match-extension': select_matching_file,
}


## materializing ----------------------------------------------------
OUTCOMES: tuple[str, ...] = (WRITTEN, SKIPPED_EXISTING, SKIPPED_EXTENSION, FAILED)


class RunSummary:
    """
    Tallies per-entry outcomes and bytes written over one run.
    """

    def __init__(self) -> None:
        self.outcome_counts: Counter[str] = Counter()
        self.bytes_written: int = 0

    def record(self, outcome: str, size: int = 0) -> None:
        if outcome not in OUTCOMES:
            raise ValueError(f'unknown outcome ``{outcome}``')
        self.outcome_counts[outcome] += 1
        self.bytes_written += size

    @property
    def processed(self) -> int:
        return sum(self.outcome_counts.values())

    @property
    def written(self) -> int:
        return self.outcome_counts[WRITTEN]

    @property
    def skipped_existing(self) -> int:
        return self.outcome_counts[SKIPPED_EXISTING]

    @property
    def skipped_extension(self) -> int:
        return self.outcome_counts[SKIPPED_EXTENSION]

    @property
    def failed(self) -> int:
        return self.outcome_counts[FAILED]


class PatchMaterializer:
    """
    Turns catalog entries into patch files on disk.
    - Builds the target path from the entry's slug and the platform's extension.
    - Skips entries whose file already exists, unless `overwrite` is set.
    - Fetches patch metadata and picks a file via the injected `select_file` policy.
    - Skips files whose extension doesn't match the platform's.
    - Downloads the file and, for SysEx platforms, trims it to its first complete message.
    - Writes the bytes, truncating any existing file.
    - Aborts on fetch/decode failures by default; with `continue_on_error` logs them and moves on.
    """

    def __init__(
        self,
        transport: ResilientTransport,
        platform: PlatformConfig,
        output_dir: Path,
        *,
        base_url: str = DEFAULT_BASE_URL,
        overwrite: bool = False,
        continue_on_error: bool = False,
        select_file: Callable[[Sequence[PatchFileRef], str], PatchFileRef | None] = select_first_file,
        show_progress: bool = False,
    ) -> None:
        self.transport = transport
        self.platform = platform
        self.output_dir = output_dir
        self.base_url = base_url.rstrip('/')
        self.overwrite = overwrite
        self.continue_on_error = continue_on_error
        self.select_file = select_file
        self.show_progress = show_progress

    def target_path(self, entry: CatalogEntry) -> Path:
        return self.output_dir / f'{entry.slug}.{self.platform.extension}'

    def fetch_metadata(self, patch_id: int) -> PatchMetadata:
        url: str = f'{self.base_url}/patches/{patch_id}'
        log.debug(f'trying patch url, ``{url}``')
        return PatchMetadata.from_json(self.transport.get_json(url))

    def normalize_sysex(self, data: bytes, label: str) -> bytes:
        """
        Trims `data` to its first SysEx message; returns it unchanged if there's nothing to trim.
        Called by: PatchMaterializer.download()
        """
        frame: bytes | None = trim_sysex_frame(data)
        if frame is None:
            log.info(f'nothing trimmed from ``{label}``; keeping all {len(data)} byte(s)')
            return data
        log.info(f'trimmed ``{label}`` from {len(data)} to {len(frame)} byte(s)')
        return frame

    def download(self, entry: CatalogEntry, path: Path) -> str:
        """
        Fetches metadata and file bytes for one entry, and writes them to `path`.
        Called by: PatchMaterializer.process_entry()
        """
        metadata: PatchMetadata = self.fetch_metadata(entry.id)
        log.debug(f'metadata, ``{metadata}``')
        extension: str = self.platform.extension
        patch_file: PatchFileRef | None = self.select_file(metadata.files, extension)
        if patch_file is None or not has_extension(patch_file.filename, extension):
            found: str = patch_file.filename if patch_file is not None else 'no matching file'
            log.info(f'skipping ``{entry.slug}``; expected a `.{extension}` file, found ``{found}``')
            return SKIPPED_EXTENSION
        data: bytes = self.transport.get(patch_file.url).content
        if self.platform.sysex:
            data = self.normalize_sysex(data, patch_file.filename)
        path.write_bytes(data)
        log.info(f'wrote ``{path}`` ({humanize.naturalsize(len(data))})')
        return WRITTEN

    def process_entry(self, entry: CatalogEntry) -> str:
        """
        Handles one catalog entry and returns its outcome: written, skipped_existing, skipped_extension, or failed.
        """
        path: Path = self.target_path(entry)
        if path.exists() and not self.overwrite:
            log.info(f'skipping existing file, ``{path}``')
            return SKIPPED_EXISTING
        try:
            return self.download(entry, path)
        except (PatchDownloadError, httpx.HTTPError, OSError) as exc:
            if not self.continue_on_error:
                raise
            log.error(f'failed on patch {entry.id} (``{entry.slug}``): {exc}')
            return FAILED

    def run(self, pages: Iterable[PageResult], limit: int | None = None) -> RunSummary:
        """
        Processes every entry of every page, in server order.
        Stops early once `limit` entries have been processed.
        """
        summary = RunSummary()
        if limit is not None and limit <= 0:
            return summary
        entries: Iterator[CatalogEntry] = (entry for page in pages for entry in page.entries)
        for entry in tqdm(entries, desc='Processing patches', unit='patch', disable=not self.show_progress):
            outcome: str = self.process_entry(entry)
            size: int = self.target_path(entry).stat().st_size if outcome == WRITTEN else 0
            summary.record(outcome, size)
            if limit is not None and summary.processed >= limit:
                log.info(f'test-limit of {limit} reached')
                break
        return summary


## cli --------------------------------------------------------------
def positive_int(value: str) -> int:
    number: int = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f'expected a positive integer, got {value}')
    return number


class CLI:
    """
    Manages command-line parsing for the script entrypoint.
    - Builds an argparse parser; every option has a default.
    - Restricts `--platform` and `--file-selection` to known choices.
    - Exposes a parse helper to support testing with custom argv.
    """

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description='Download device patches from the patchstorage catalog.')
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
        parser.add_argument('--output-dir', default='out', help='Existing directory to put the patches in (default: out)')
        parser.add_argument(
            '--platform',
            choices=sorted(PLATFORMS),
            default='meris-lvx',
            help='Device platform to download patches for (default: meris-lvx)',
        )
        parser.add_argument('--overwrite', action='store_true', help='Re-download patches whose file already exists.')
        parser.add_argument(
            '--continue-on-error',
            action='store_true',
            help='Log and skip a patch that fails to download, instead of aborting the run.',
        )
        parser.add_argument(
            '--file-selection',
            choices=sorted(FILE_SELECTORS),
            default='first',
            help='Which of a patch\'s files to download: the first one, or the first with the platform\'s extension.',
        )
        parser.add_argument(
            '--max-attempts',
            type=positive_int,
            default=RetryPolicy.max_attempts,
            metavar='INTEGER',
            help=f'Attempts per request before giving up (default: {RetryPolicy.max_attempts}).',
        )
        parser.add_argument('--base-url', default=DEFAULT_BASE_URL, help=f'Catalog api root (default: {DEFAULT_BASE_URL})')
        parser.add_argument(
            '--test-limit',
            type=int,
            default=None,
            metavar='INTEGER',
            help='Optional. Stop after this many patches have been processed (useful for testing).',
        )
        return parser

    @staticmethod
    def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
        return CLI.build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Pages through the platform's patch list and downloads each patch.

    Flow:
    - Parses CLI args; checks the output directory exists.
    - Creates an httpx client with headers, timeouts, and connection limits.
    - Wraps it in a ResilientTransport shared by the pager and the materializer.
    - Walks the catalog pages, writing or skipping each patch.
    - Returns 0 on success, 1 on any failure that aborted the run.

    Called by: dundermain
    """
    ## handle args --------------------------------------------------
    args: argparse.Namespace = CLI.parse_args(argv)
    log.debug(f'args, ``{args}``')
    output_dir: Path = Path(args.output_dir).expanduser()
    if not output_dir.is_dir():
        log.error(f'output directory ``{output_dir}`` doesn\'t exist')
        return 1
    platform: PlatformConfig = PLATFORMS[args.platform]
    policy = RetryPolicy(max_attempts=args.max_attempts)

    ## create httpx client (headers, timeouts, limits) --------------
    headers: dict[str, str] = {'user-agent': USER_AGENT}
    timeout: httpx.Timeout = httpx.Timeout(connect=30.0, read=60.0, write=60.0, pool=30.0)
    limits: httpx.Limits = httpx.Limits(max_keepalive_connections=4, max_connections=4)
    try:
        with httpx.Client(headers=headers, timeout=timeout, limits=limits) as client:
            transport = ResilientTransport(client, policy)
            pager = PatchCatalogPager(transport, PageRequest(platform=platform.platform_id), base_url=args.base_url)
            materializer = PatchMaterializer(
                transport,
                platform,
                output_dir,
                base_url=args.base_url,
                overwrite=args.overwrite,
                continue_on_error=args.continue_on_error,
                select_file=FILE_SELECTORS[args.file_selection],
                show_progress=True,
            )
            summary: RunSummary = materializer.run(pager, limit=args.test_limit)
    except (PatchDownloadError, httpx.HTTPError, OSError) as exc:
        log.error(f'download aborted: {exc}')
        return 1

    ## wrap up output -----------------------------------------------
    print(f'Done. Wrote {summary.written} patch file(s) ({humanize.naturalsize(summary.bytes_written)}).')
    print(f'Skipped (already on disk): {summary.skipped_existing}')
    print(f'Skipped (wrong extension): {summary.skipped_extension}')
    if summary.failed:
        print(f'Failed: {summary.failed}')
    return 0

    ## end def main()


if __name__ == '__main__':
    raise SystemExit(main())
