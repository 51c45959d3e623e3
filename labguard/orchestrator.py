"""
Plagiarism detection orchestrator.

Compares one subject lab against many other labs. Every other lab is an
independent task on a coarse thread pool; inside a task, entity pairs are
scored on a second, fine-grained pool. Lab tasks block on pair futures, so
the two pools are kept separate: pair work never waits on anything and can
always drain.

Pair scores are memoized in a :class:`SimilarityCache` shared by all tasks.
Scores are pure functions of entity content, so two tasks racing on the
same pair compute the same value; the first stored value wins.

Error policy is chosen once per orchestrator (see :class:`ErrorPolicy`):
a pair that cannot be scored is always skipped and logged; a failing lab
task is either recorded in the report (``continue``) or cancels the run
(``fail_fast``).
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable

from .config import DetectionConfig, ErrorPolicy, Granularity
from .detectors import Comparable, Detector
from .errors import LabguardError, OrchestrationError
from .grouping import GroupKeySelector
from .models import ComparisonReport, Finding, Lab, MethodFinding, Submission

logger = logging.getLogger(__name__)

PairKey = tuple[str, str]


class SimilarityCache:
    """Thread-safe compute-if-absent map of pair scores."""

    def __init__(self):
        self._values: dict[PairKey, float] = {}
        self._stats_lock = threading.Lock()  # Guards counters only
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(detector: Detector, source: Comparable, target: Comparable) -> PairKey:
        if detector.symmetric and target.fingerprint < source.fingerprint:
            return target.fingerprint, source.fingerprint
        return source.fingerprint, target.fingerprint

    def get_or_compute(self, key: PairKey, compute: Callable[[], float]) -> float:
        value = self._values.get(key)
        if value is not None:
            with self._stats_lock:
                self.hits += 1
            return value

        with self._stats_lock:
            self.misses += 1
        return self._values.setdefault(key, compute())

    def __len__(self) -> int:
        return len(self._values)


class PlagiarismOrchestrator:
    """
    Fan-out/fan-in comparison of one lab against many.

    Args:
        detector: Similarity strategy
        config: Threshold, granularity, grouping, workers and error policy
        cache: Pair score cache (a fresh one by default); share it between
            runs to reuse scores
    """

    def __init__(self, detector: Detector, config: DetectionConfig, cache: SimilarityCache | None = None):
        self.detector = detector
        self.config = config
        self.cache = cache if cache is not None else SimilarityCache()
        self.class_selector = GroupKeySelector(**config.class_grouping.model_dump())
        self.method_selector = GroupKeySelector(**config.method_grouping.model_dump())

    def find_plagiarists(self, subject: Lab, others: list[Lab]) -> ComparisonReport:
        """
        Compare the subject lab with every other lab.

        Labs of the subject's owner and labs with nothing to compare are
        skipped. Returns only after every task has finished.

        Args:
            subject: Lab under check
            others: Labs to compare against

        Returns:
            ComparisonReport keyed by the other labs' owners

        Raises:
            OrchestrationError: under FAIL_FAST, when a lab task fails
        """
        report = ComparisonReport(subject=subject)
        targets = [lab for lab in others if lab.owner != subject.owner and lab.comparable]

        if not subject.comparable:
            logger.warning(f"Lab {subject.owner}/{subject.assignment} has nothing to compare")
            return report
        if not targets:
            logger.info(f"No other labs to compare {subject.owner}/{subject.assignment} with")
            return report

        logger.info(
            f"Comparing {subject.owner}/{subject.assignment} with {len(targets)} labs "
            f"({self.config.granularity.value} granularity, {self.config.workers} workers)"
        )

        workers = self.config.workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="labguard-lab") as lab_pool, \
                ThreadPoolExecutor(max_workers=workers, thread_name_prefix="labguard-pair") as pair_pool:
            futures = {
                lab_pool.submit(self.compare_lab, subject, lab, pair_pool): lab
                for lab in targets
            }
            for future in as_completed(futures):
                lab = futures[future]
                try:
                    findings = future.result()
                except Exception as e:
                    if self.config.error_policy == ErrorPolicy.FAIL_FAST:
                        # Queued pairs of sibling labs are dropped, running ones finish
                        lab_pool.shutdown(wait=False, cancel_futures=True)
                        pair_pool.shutdown(wait=False, cancel_futures=True)
                        raise OrchestrationError(lab.owner, e) from e
                    logger.exception(f"Comparison with lab of {lab.owner} failed")
                    report.failures[lab.owner] = str(e)
                    continue

                report.findings[lab.owner] = findings
                logger.info(f"Compared with {lab.owner}: {len(findings)} findings")

        logger.info(
            f"Comparison finished: {report.flagged_count} findings, {len(report.failures)} failed labs, "
            f"cache {self.cache.hits} hits / {self.cache.misses} misses"
        )
        return report

    def compare_lab(self, subject: Lab, target: Lab, pair_pool: ThreadPoolExecutor) -> list[Finding]:
        """Findings of one subject/target lab pair (one unit of concurrent work)."""
        if self.config.granularity == Granularity.METHOD:
            return self._compare_methods(subject, target, pair_pool)
        return self._compare_classes(subject, target, pair_pool)

    def similarity(self, source: Comparable, target: Comparable) -> float | None:
        """Memoized pair score, or None if the pair cannot be scored."""
        key = SimilarityCache.key(self.detector, source, target)
        try:
            score = self.cache.get_or_compute(key, lambda: self.detector.detect(source, target))
        except (LabguardError, ValueError, ArithmeticError, RecursionError) as e:
            logger.warning(f"Skipping pair {source.name} / {target.name}: {e}")
            return None
        logger.debug(f"{source.name} / {target.name}: {score:.3f}")
        return score

    def _compare_classes(self, subject: Lab, target: Lab, pair_pool: ThreadPoolExecutor) -> list[Finding]:
        subject_items = subject.comparable
        groups = self.class_selector.group(subject_items)

        pending: list[tuple[Submission, Submission, Future]] = []
        for target_item in target.comparable:
            for index in self.class_selector.select_candidates(subject_items, groups, target_item):
                subject_item = subject_items[index]
                pending.append((
                    subject_item,
                    target_item,
                    pair_pool.submit(self.similarity, subject_item, target_item),
                ))

        findings = []
        for subject_item, target_item, future in pending:
            score = future.result()
            if score is not None and score > self.config.threshold:
                findings.append(Finding(subject=subject_item, match=target_item, score=score))
        return findings

    def _compare_methods(self, subject: Lab, target: Lab, pair_pool: ThreadPoolExecutor) -> list[Finding]:
        findings = []
        for target_item in target.comparable:
            for subject_item in subject.comparable:
                matches = self.match_methods(subject_item, target_item, pair_pool)
                if not matches:
                    continue
                score = sum(match.score for match in matches) / len(matches)
                findings.append(Finding(
                    subject=subject_item,
                    match=target_item,
                    score=score,
                    methods=tuple(matches),
                ))
        return findings

    def match_methods(
        self,
        subject_item: Submission,
        target_item: Submission,
        pair_pool: ThreadPoolExecutor,
    ) -> list[MethodFinding]:
        """
        Greedy one-to-one matching of methods between two submissions.

        Subject methods are processed in order; each takes the best-scoring
        target method still available (earliest on ties) above the
        threshold, which then leaves the pool. No target method is matched
        twice.
        """
        subject_methods = [method for method in subject_item.methods if method.tree is not None]
        target_methods = [method for method in target_item.methods if method.tree is not None]
        if not subject_methods or not target_methods:
            return []

        groups = self.method_selector.group(target_methods)
        candidates = {
            index: self.method_selector.select_candidates(target_methods, groups, method)
            for index, method in enumerate(subject_methods)
        }
        futures = {
            (index, candidate): pair_pool.submit(self.similarity, subject_methods[index], target_methods[candidate])
            for index, indices in candidates.items()
            for candidate in indices
        }
        scores = {pair: future.result() for pair, future in futures.items()}

        available = set(range(len(target_methods)))
        matches: list[MethodFinding] = []
        for index, method in enumerate(subject_methods):
            best_index: int | None = None
            best_score = self.config.threshold
            for candidate in candidates[index]:
                score = scores[(index, candidate)]
                if candidate in available and score is not None and score > best_score:
                    best_index, best_score = candidate, score
            if best_index is None:
                continue

            available.discard(best_index)
            matches.append(MethodFinding(subject=method, match=target_methods[best_index], score=best_score))
        return matches
