# polyglot_press/pretranslator.py
"""
本模块包含预翻译调度器。

每次扫描都会检查最近更新的聚类，对每个市场的每个预翻译语言比较
“枢纽语言当前记录的指纹”与“目标语言当前记录上记录的指纹”。
只有不一致（或目标记录不存在）时才生成任务；因此对未变化的内容
重复扫描不会产生任何任务或新行。
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog

from polyglot_press.config import PretranslationConfig
from polyglot_press.core.exceptions import DatabaseError, TranslationTimeoutError
from polyglot_press.core.interfaces import ContentRepository
from polyglot_press.core.types import (
    ClusterAIRecord,
    PretranslationJob,
    PretranslationReport,
)
from polyglot_press.fields import FieldTranslator
from polyglot_press.utils import content_fingerprint, normalize_bcp47, normalize_target_langs

logger = structlog.get_logger(__name__)

MAX_CONCURRENCY = 16
PROVENANCE_TAG = "#ph="

JobOutcome = Literal["inserted", "skipped", "failed"]


def provenance_tag(provider_name: str, pivot_hash: str) -> str:
    """生成写入 `model` 列的来源标签，例如 `openai#ph=1a2b3c4d5e`。"""
    return f"{provider_name}{PROVENANCE_TAG}{pivot_hash}"


def is_fresh(record: ClusterAIRecord | None, pivot_hash: str) -> bool:
    """目标记录是否已由当前的枢纽内容生成。"""
    if record is None:
        return False
    if record.pivot_hash == pivot_hash:
        return True
    return f"{PROVENANCE_TAG}{pivot_hash}" in (record.model or "")


def find_by_lang(
    records: dict[str, ClusterAIRecord], lang: str
) -> ClusterAIRecord | None:
    """按规范化后的语言代码查找记录。"""
    if lang in records:
        return records[lang]
    wanted = normalize_bcp47(lang)
    for code, record in records.items():
        if normalize_bcp47(code) == wanted:
            return record
    return None


class PretranslationScheduler:
    """周期性地让各语言的派生内容与枢纽语言记录保持同步。"""

    def __init__(
        self,
        repository: ContentRepository,
        translator: FieldTranslator,
        *,
        provider_name: str,
        config: PretranslationConfig | None = None,
        market: str | None = None,
    ):
        self.repository = repository
        self.translator = translator
        self.provider_name = provider_name
        self.config = config or PretranslationConfig()
        self.market = market

    async def run_pretranslation_cycle(
        self,
        recent_hours: int | None = None,
        concurrency: int | None = None,
        per_item_timeout_ms: int | None = None,
        max_clusters: int | None = None,
        market: str | None = None,
    ) -> PretranslationReport:
        """执行一次扫描。永远不会抛出异常，扫描级错误记录在报告的 `error` 中。"""
        hours = self.config.recent_hours if recent_hours is None else recent_hours
        if concurrency is None:
            concurrency = self.config.concurrency
        workers = max(1, min(concurrency, MAX_CONCURRENCY))
        if per_item_timeout_ms is None:
            per_item_timeout_ms = self.config.per_item_timeout_ms
        timeout_s = per_item_timeout_ms / 1000
        limit = self.config.max_clusters if max_clusters is None else max_clusters
        market_code = self.market if market is None else market

        report = PretranslationReport()
        try:
            jobs = await self._plan(report, hours, limit, market_code)
            if jobs:
                await self._execute(report, jobs, workers, timeout_s)
        except Exception as e:
            logger.error("预翻译扫描失败", exc_info=True)
            report.error = str(e)

        logger.info("预翻译扫描完成", **report.model_dump(exclude_none=True))
        return report

    async def _plan(
        self,
        report: PretranslationReport,
        recent_hours: int,
        max_clusters: int,
        market_code: str | None,
    ) -> list[PretranslationJob]:
        markets = await self.repository.list_markets(market_code)
        if not markets:
            logger.info("没有启用的市场，跳过预翻译", market=market_code)
            return []

        since = datetime.now(timezone.utc) - timedelta(hours=recent_hours)
        clusters = await self.repository.list_recent_clusters(since, max_clusters)
        report.clusters_checked = len(clusters)

        jobs: list[PretranslationJob] = []
        seen: set[tuple[str, str, str]] = set()
        for ref in clusters:
            current = await self.repository.get_current_cluster_ai(ref.cluster_id)
            for market in markets:
                pivot_lang = normalize_bcp47(market.pivot_lang)
                pivot = find_by_lang(current, pivot_lang)
                if pivot is None:
                    continue
                pivot_hash = content_fingerprint(pivot.title, pivot.summary, pivot.details)
                for lang in normalize_target_langs(market.target_langs, pivot_lang):
                    job = PretranslationJob(
                        cluster_id=ref.cluster_id,
                        target_lang=lang,
                        pivot_lang=pivot_lang,
                        pivot=pivot.fields,
                        pivot_hash=pivot_hash,
                    )
                    if job.dedup_key in seen:
                        continue
                    seen.add(job.dedup_key)
                    if is_fresh(find_by_lang(current, lang), pivot_hash):
                        report.skipped_fresh += 1
                        continue
                    jobs.append(job)

        report.jobs_created = len(jobs)
        return jobs

    async def _execute(
        self,
        report: PretranslationReport,
        jobs: list[PretranslationJob],
        workers: int,
        timeout_s: float,
    ) -> None:
        queue: asyncio.Queue[PretranslationJob] = asyncio.Queue()
        for job in jobs:
            queue.put_nowait(job)

        async def _worker() -> None:
            while True:
                try:
                    job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcome = await self._run_job(job, timeout_s)
                if outcome == "inserted":
                    report.translations_inserted += 1
                elif outcome == "skipped":
                    report.jobs_skipped += 1
                else:
                    report.jobs_failed += 1

        await asyncio.gather(*(_worker() for _ in range(min(workers, len(jobs)))))

    async def _run_job(self, job: PretranslationJob, timeout_s: float) -> JobOutcome:
        log = logger.bind(
            cluster_id=job.cluster_id,
            target_lang=job.target_lang,
            pivot_hash=job.pivot_hash,
        )
        try:
            return await self._process_job(job, timeout_s, log)
        except TranslationTimeoutError as e:
            log.warning("预翻译任务超时，已放弃", error=str(e))
        except Exception as e:
            log.error("预翻译任务失败", error=str(e), exc_info=True)
        return "failed"

    async def _process_job(
        self, job: PretranslationJob, timeout_s: float, log: structlog.stdlib.BoundLogger
    ) -> JobOutcome:
        current = await self.repository.get_current_cluster_ai(job.cluster_id)
        pivot = find_by_lang(current, job.pivot_lang)
        if pivot is None or job.pivot_hash != content_fingerprint(
            pivot.title, pivot.summary, pivot.details
        ):
            log.info("枢纽内容已变化，跳过任务")
            return "skipped"
        if is_fresh(find_by_lang(current, job.target_lang), job.pivot_hash):
            return "skipped"

        try:
            translated = await asyncio.wait_for(
                self.translator.translate_fields(
                    job.pivot, job.pivot_lang, job.target_lang
                ),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise TranslationTimeoutError(f"翻译超过 {timeout_s:.1f} 秒未完成") from e
        if translated.is_blank():
            log.warning("翻译结果为空，未写入")
            return "skipped"

        record = ClusterAIRecord(
            cluster_id=job.cluster_id,
            lang=job.target_lang,
            title=translated.title,
            summary=translated.summary,
            details=translated.details,
            pivot_hash=job.pivot_hash,
            model=provenance_tag(self.provider_name, job.pivot_hash),
        )
        try:
            stored = await self.repository.supersede_cluster_ai(record)
        except DatabaseError as e:
            log.error("写入预翻译结果失败", error=str(e))
            return "failed"
        log.debug("预翻译结果已写入", record_id=stored.id)
        return "inserted"
