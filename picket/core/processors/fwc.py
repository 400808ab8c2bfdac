# picket/core/processors/fwc.py
"""
Fair Work Commission agreement lookup.

For each employer in the job, search the FWC document search with a short
list of query variants and either link the best agreement (auto_link) or
publish the candidates for a human to pick. Employers fail individually;
the job itself only fails when employer names cannot be loaded.

Event payload keys are camelCase: the dashboard reads them as written.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from picket.core.logging import get_logger
from picket.core.models.job import ProcessResult
from picket.core.models.payloads import FwcLookupPayload
from picket.core.processors.base import Sleep, with_timeout_retry
from picket.core.utils.backoff import RetryBackoff
from picket.core.worker.context import JobContext

logger = get_logger('fwc')

QUERY_PREFIX = 'cfmeu construction nsw'
MAX_REPORTED_RESULTS = 15
DEFAULT_DELAY_BETWEEN_MS = 1000
DEFAULT_LOOKUP_TIMEOUT_MS = 60_000

_LEGAL_SUFFIX_RE = re.compile(
    r'\s+(Pty\s+Ltd|Pty\.?\s*Ltd\.?|Limited|Ltd\.?|Incorporated|Inc\.?|Corporation|Corp\.?)$',
    re.IGNORECASE,
)
_PARENTHESES_RE = re.compile(r'\s*\([^)]*\)')
_GENERIC_SUFFIX_RE = re.compile(
    r'\s+(Group|Holdings|Enterprises|Services|Solutions|Systems|Technologies|International|Australia|Australian)$',
    re.IGNORECASE,
)
_NON_WORD_RE = re.compile(r'[^\w\s]')
_SPACES_RE = re.compile(r'\s+')


class FwcSearchError(Exception):
    """A search failed; context describes the page state for debugging."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


@dataclass(slots=True, frozen=True)
class SearchResult:
    title: str
    status: str | None = None
    url: str | None = None
    extra: dict[str, Any] = field(default_factory=lambda: {})

    def as_dict(self) -> dict[str, Any]:
        return {'title': self.title, 'status': self.status, 'url': self.url, **self.extra}


# query -> results, best match first
Lookup = Callable[[str], Awaitable[list[SearchResult]]]
# employer ids -> {id: name}; raise to fail the job
ResolveNames = Callable[[list[str]], Awaitable[dict[str, str]]]
# (employer id, chosen agreement) -> None
Link = Callable[[str, SearchResult], Awaitable[None]]


def simplify_company_name(company_name: str) -> str:
    """Reduce a company name to at most three significant words.

    'Acme Building Group Pty Ltd' -> 'Acme Building'
    """
    if not company_name:
        return ''
    simplified = _LEGAL_SUFFIX_RE.sub('', company_name)
    simplified = _PARENTHESES_RE.sub('', simplified)
    simplified = _GENERIC_SUFFIX_RE.sub('', simplified)
    simplified = _NON_WORD_RE.sub(' ', simplified)
    simplified = _SPACES_RE.sub(' ', simplified).strip()
    words = [word for word in simplified.split(' ') if len(word) > 2]
    return ' '.join(words[:3])


def _with_prefix(term: str) -> str:
    return f'{QUERY_PREFIX} {term}'.strip()


def build_query_candidates(company_name: str, override: str | None = None) -> list[str]:
    """Ordered, de-duplicated search queries for one employer.

    An operator override comes first, then the simplified name and finally
    the full name, each with and without the query prefix.
    """
    candidates: dict[str, None] = {}
    clean_override = (override or '').strip()
    simplified = simplify_company_name(company_name)

    if clean_override:
        candidates[clean_override] = None
        candidates[_with_prefix(clean_override)] = None
    if simplified and simplified != clean_override:
        candidates[_with_prefix(simplified)] = None
        candidates[simplified] = None
    if company_name and company_name not in (simplified, clean_override):
        candidates[_with_prefix(company_name)] = None
        candidates[company_name] = None
    if not candidates:
        candidates[_with_prefix(company_name or '')] = None
        candidates[company_name or ''] = None

    return [query for query in candidates if query.strip()]


class FwcLookupProcessor:
    def __init__(
        self,
        lookup: Lookup,
        resolve_names: ResolveNames,
        link: Link | None = None,
        *,
        delay_between_ms: int = DEFAULT_DELAY_BETWEEN_MS,
        lookup_timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS,
        retry: RetryBackoff | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.lookup = lookup
        self.resolve_names = resolve_names
        self.link = link
        self.delay_between_ms = delay_between_ms
        self.lookup_timeout_ms = lookup_timeout_ms
        self.retry = retry or RetryBackoff(initial_ms=2000, max_ms=10_000, max_attempts=1)
        self.sleep = sleep

    async def __call__(self, ctx: JobContext) -> ProcessResult:
        payload = ctx.payload
        if not isinstance(payload, FwcLookupPayload):
            raise TypeError(f'expected FwcLookupPayload, got {type(payload).__name__}')

        employer_ids = payload.employer_ids
        auto_link = payload.options.auto_link
        if not employer_ids:
            await ctx.event('fwc_no_employers')
            return ProcessResult()

        try:
            names = await self.resolve_names(employer_ids)
        except Exception as exc:
            raise RuntimeError(f'Failed to load employer names: {exc}') from exc

        logger.info(
            f'FWC job {ctx.job_id} started: {len(employer_ids)} employer(s), auto_link={auto_link}'
        )
        succeeded = 0
        failed = 0
        for index, employer_id in enumerate(employer_ids):
            employer_name = names.get(employer_id) or employer_id
            override = payload.options.search_overrides.get(employer_id)
            if await self._process_employer(ctx, employer_id, employer_name, override, auto_link):
                succeeded += 1
            else:
                failed += 1

            await ctx.report_progress(index + 1)
            if index + 1 < len(employer_ids):
                await self.sleep(self.delay_between_ms / 1000.0)

        return ProcessResult(succeeded=succeeded, failed=failed)

    async def _search(self, query: str) -> list[SearchResult]:
        return await with_timeout_retry(
            lambda: self.lookup(query),
            timeout_ms=self.lookup_timeout_ms,
            backoff=self.retry,
            label=f'FWC search {query!r}',
            sleep=self.sleep,
        )

    async def _process_employer(
        self,
        ctx: JobContext,
        employer_id: str,
        employer_name: str,
        override: str | None,
        auto_link: bool,
    ) -> bool:
        ids = {'employerId': employer_id, 'employerName': employer_name}
        await ctx.event('fwc_employer_started', ids)
        try:
            queries = build_query_candidates(employer_name, override)
            results: list[SearchResult] = []
            used_query = queries[0] if queries else employer_name
            for query in queries:
                await ctx.event('fwc_employer_query_attempt', {**ids, 'query': query})
                attempt = await self._search(query)
                if attempt:
                    results = attempt
                    used_query = query
                    break

            limited = [r.as_dict() for r in results[:MAX_REPORTED_RESULTS]]
            await ctx.event(
                'fwc_employer_results',
                {
                    **ids,
                    'query': used_query,
                    'resultsCount': len(results),
                    'firstTitle': results[0].title if results else None,
                    'results': None if auto_link else limited,
                },
            )

            if not results:
                await ctx.event('fwc_employer_no_results', ids)
                return False

            if auto_link:
                best = results[0]
                if self.link is not None:
                    await self.link(employer_id, best)
                await ctx.event(
                    'fwc_employer_succeeded',
                    {**ids, 'resultTitle': best.title, 'status': best.status},
                )
            else:
                await ctx.event(
                    'fwc_employer_candidates',
                    {**ids, 'query': used_query, 'results': limited},
                )
            return True
        except Exception as exc:
            failure: dict[str, Any] = {**ids, 'error': str(exc) or type(exc).__name__}
            if isinstance(exc, FwcSearchError):
                failure['debug'] = exc.context
                await ctx.event('fwc_employer_debug', {**ids, 'context': exc.context})
            await ctx.event('fwc_employer_failed', failure)
            logger.error(f'FWC lookup for employer {employer_id} failed: {exc!r}')
            return False
