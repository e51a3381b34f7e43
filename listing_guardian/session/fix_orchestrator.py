from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from listing_guardian.agents.generation_agent import run_generation
from listing_guardian.agents.state import FixAttempt, FixOptions, FixProgressState
from listing_guardian.agents.verification_agent import run_verification
from listing_guardian.app.errors import (
    AgentExecutionError,
    AppError,
    ConfigError,
    ErrorKind,
    FixAlreadyRunningError,
    FixNotFoundError,
    ProviderCallError,
    ProviderTransportError,
)
from listing_guardian.core.hashing import image_fingerprint
from listing_guardian.core.ids import new_run_id
from listing_guardian.graph.build_graph import build_fix_graph, recursion_limit
from listing_guardian.graph.policies import SatisfactionPolicy, maybe_get_policy
from listing_guardian.llms.invoker import ResilientInvoker
from listing_guardian.llms.prompt_registry import compose_fix_prompt
from listing_guardian.llms.providers.base import ImageGenerationProvider, VerificationProvider
from listing_guardian.schemas.asset_schema import Asset
from listing_guardian.schemas.compliance_schema import ComplianceResult
from listing_guardian.tools.image_ops.codec import EncodedImage, extract

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    run_id: str
    asset: Asset
    policy: SatisfactionPolicy
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)


@dataclass
class FixJob:
    """One asset to fix in a batch."""
    asset: Asset
    compliance: ComplianceResult
    options: Optional[FixOptions] = None
    listing_title: Optional[str] = None


def select_reference_image(asset: Asset, assets: Sequence[Asset]) -> Optional[EncodedImage]:
    """
    SECONDARY images are cross-checked against the MAIN product image:
    its accepted fix when there is one, else the original upload.
    """
    if asset.is_main:
        return None
    for other in assets:
        if other.is_main and other.asset_id != asset.asset_id:
            return extract(other.fixed_image or other.image)
    return None


class FixOrchestrator:
    """
    Per-asset generate -> verify -> retry loop.

    Each run is a compiled LangGraph StateGraph (prepare_attempt, generate, verify).
    Nodes never mutate progress in place: they publish a new FixProgressState which
    becomes visible through `get_progress` and the `start_fix` stream.

    Two retry layers stay separate:
    - the invoker retries one provider call on transient failures
    - the graph regenerates (new attempt) only after a verified rejection
    """

    def __init__(
        self,
        generator: ImageGenerationProvider,
        verifier: VerificationProvider,
        *,
        invoker: Optional[ResilientInvoker] = None,
        verify_invoker: Optional[ResilientInvoker] = None,
    ):
        self.generator = generator
        self.verifier = verifier
        self.invoker = invoker or ResilientInvoker(name="generation")
        self.verify_invoker = verify_invoker or self.invoker

        self._runs: Dict[str, _Run] = {}
        self._latest: Dict[str, FixProgressState] = {}

        self._graph = build_fix_graph(
            prepare_attempt=self._prepare_attempt,
            generate=self._generate,
            verify=self._verify,
        ).compile()

    # -------------------------
    # caller surface
    # -------------------------
    async def start_fix(
        self,
        asset: Asset,
        compliance: ComplianceResult,
        options: Optional[FixOptions] = None,
        *,
        reference_image: Optional[EncodedImage] = None,
        listing_title: Optional[str] = None,
    ) -> AsyncIterator[FixProgressState]:
        """
        Run the fix loop for one asset, yielding every progress snapshot.
        Closing the iterator early abandons the run (no write-back).
        """
        options = options or FixOptions()
        policy = maybe_get_policy(options.policy)
        if policy is None:
            raise ConfigError(f"Unknown satisfaction policy: {options.policy}")

        if asset.asset_id in self._runs:
            raise FixAlreadyRunningError(f"Fix already running for asset {asset.asset_id}")

        run = _Run(
            run_id=new_run_id(),
            asset=asset,
            policy=policy.with_threshold(options.satisfaction_threshold),
        )
        self._runs[asset.asset_id] = run

        progress = self._publish(
            FixProgressState(
                run_id=run.run_id,
                asset_id=asset.asset_id,
                attempt=1,
                max_attempts=options.max_attempts,
                phase="generating",
                custom_prompt=options.custom_prompt,
                satisfaction_threshold=options.satisfaction_threshold,
                thinking_steps=("Initializing fix pipeline",),
            )
        )
        logger.info(
            f"Fix run started (max attempts {options.max_attempts}, policy {policy.name})",
            extra={"asset_id": asset.asset_id, "run_id": run.run_id},
        )

        last: Optional[FixProgressState] = None
        try:
            state: Dict[str, Any] = {
                "asset": asset,
                "compliance": compliance,
                "options": options,
                "original_image": extract(asset.image),
                "reference_image": reference_image,
                "listing_title": listing_title,
                "feedback": None,
                "progress": progress,
            }
            stream = self._graph.astream(
                state,
                config={"recursion_limit": recursion_limit(options.max_attempts)},
                stream_mode="values",
            )
            async with aclosing(stream):
                async for values in stream:
                    current = values["progress"]
                    if current is last:
                        continue
                    last = current
                    yield current
                    if run.cancelled.is_set() and not current.is_terminal:
                        break

            if last is None or not last.is_terminal:
                last = self._abandon(run, last or progress)
                yield last
        except (GeneratorExit, asyncio.CancelledError):
            run.cancelled.set()
            self._abandon(run, self._latest.get(asset.asset_id, progress))
            raise
        except Exception as e:
            failed = (last or progress).evolve(
                phase="error",
                error_kind="unknown",
                error_message=str(e),
                thinking=(f"Fix pipeline crashed: {e}",),
            )
            self._publish(failed)
            logger.exception("Fix run crashed", extra={"asset_id": asset.asset_id, "run_id": run.run_id})
            raise AgentExecutionError(f"Fix run for asset {asset.asset_id} failed: {e}") from e
        finally:
            if self._runs.get(asset.asset_id) is run:
                del self._runs[asset.asset_id]

    async def run_fix(
        self,
        asset: Asset,
        compliance: ComplianceResult,
        options: Optional[FixOptions] = None,
        *,
        reference_image: Optional[EncodedImage] = None,
        listing_title: Optional[str] = None,
    ) -> FixProgressState:
        """Drain `start_fix` and return the terminal snapshot."""
        final: Optional[FixProgressState] = None
        async for snapshot in self.start_fix(
            asset,
            compliance,
            options,
            reference_image=reference_image,
            listing_title=listing_title,
        ):
            final = snapshot
        if final is None:
            raise AgentExecutionError(f"Fix run for asset {asset.asset_id} produced no progress")
        return final

    def get_progress(self, asset_id: str) -> FixProgressState:
        """Latest snapshot for the asset's current or most recent run."""
        try:
            return self._latest[asset_id]
        except KeyError:
            raise FixNotFoundError(f"No fix run for asset {asset_id}") from None

    def is_running(self, asset_id: str) -> bool:
        return asset_id in self._runs

    def cancel(self, asset_id: str) -> bool:
        """
        Ask the asset's run to stop. In-flight provider calls finish; no further
        attempt starts and nothing is written back. Returns False if nothing is running.
        """
        run = self._runs.get(asset_id)
        if run is None:
            return False
        run.cancelled.set()
        logger.info("Fix run cancellation requested", extra={"asset_id": asset_id, "run_id": run.run_id})
        return True

    async def run_batch(self, jobs: Sequence[FixJob]) -> Dict[str, FixProgressState]:
        """
        Fix every failing asset that has no accepted fix yet.
        MAIN assets go first; the rest then run concurrently against the fixed MAIN image.
        A job that raises does not stop the batch: its latest snapshot is recorded instead.
        """
        pending = [j for j in jobs if j.compliance.status == "FAIL" and not j.asset.fixed_image]
        assets = [j.asset for j in jobs]
        results: Dict[str, FixProgressState] = {}

        logger.info(f"Starting batch fix for {len(pending)} images")

        for job in (j for j in pending if j.asset.is_main):
            final = await self._run_job(job)
            if final is not None:
                results[job.asset.asset_id] = final

        others = [j for j in pending if not j.asset.is_main]
        finals = await asyncio.gather(
            *(self._run_job(j, reference_image=select_reference_image(j.asset, assets)) for j in others)
        )
        for job, final in zip(others, finals):
            if final is not None:
                results[job.asset.asset_id] = final

        passed = sum(1 for s in results.values() if s.phase == "passed")
        logger.info(f"Batch fix complete: {passed}/{len(results)} passed")
        return results

    async def _run_job(
        self, job: FixJob, *, reference_image: Optional[EncodedImage] = None
    ) -> Optional[FixProgressState]:
        asset_id = job.asset.asset_id
        try:
            return await self.run_fix(
                job.asset,
                job.compliance,
                job.options,
                reference_image=reference_image,
                listing_title=job.listing_title,
            )
        except AppError as e:
            logger.warning(f"Batch job failed: {e}", extra={"asset_id": asset_id})
        try:
            return self.get_progress(asset_id)
        except FixNotFoundError:
            return None

    # -------------------------
    # graph nodes
    # -------------------------
    async def _prepare_attempt(self, state: Dict[str, Any]) -> Dict[str, Any]:
        progress: FixProgressState = state["progress"]
        run = self._run_for(progress)
        if run.cancelled.is_set():
            return {"progress": self._cancelled(progress)}

        options: FixOptions = state["options"]
        compliance: ComplianceResult = state["compliance"]
        asset: Asset = state["asset"]
        feedback = state.get("feedback")

        instruction = compose_fix_prompt(
            category=options.category or asset.role,
            enhancement_type=options.enhancement_type,
            target_improvements=compliance.target_improvements(),
            preserve_elements=options.preserve_elements,
            prior_critique=feedback,
            user_override=options.custom_prompt or compliance.generative_prompt,
        )

        thinking = [f"Attempt {progress.attempt}/{progress.max_attempts}: generating fixed image"]
        if feedback is not None:
            thinking.append("Feeding previous critique into the instruction")
        if state.get("reference_image") is not None:
            thinking.append("Cross-referencing with MAIN product image")

        logger.info(
            "Generating",
            extra={"asset_id": progress.asset_id, "attempt": progress.attempt, "phase": "generating"},
        )
        return {
            "instruction": instruction,
            "progress": self._publish(progress.evolve(phase="generating", thinking=thinking)),
        }

    async def _generate(self, state: Dict[str, Any]) -> Dict[str, Any]:
        progress: FixProgressState = state["progress"]
        options: FixOptions = state["options"]
        run = self._run_for(progress)

        try:
            image = await run_generation(
                provider=self.generator,
                invoker=self.invoker,
                instruction=state["instruction"],
                image=state["original_image"],
                reference_image=state.get("reference_image"),
                max_retries=options.max_retries,
            )
        except (ProviderCallError, ProviderTransportError) as e:
            kind, message = _error_details(e)
            logger.warning(
                f"Generation failed: {message}",
                extra={"asset_id": progress.asset_id, "attempt": progress.attempt, "error_kind": kind},
            )
            return {
                "progress": self._publish(
                    progress.evolve(
                        phase="error",
                        error_kind=kind,
                        error_message=message,
                        thinking=(f"Generation failed: {message}",),
                    )
                )
            }

        if run.cancelled.is_set():
            return {"progress": self._cancelled(progress)}

        data_uri = image.to_data_uri()
        attempt = FixAttempt(
            attempt=progress.attempt,
            generated_image=data_uri,
            image_sha256=image_fingerprint(image.media_type, image.data),
            status="verifying",
        )
        logger.info(
            "Verifying",
            extra={"asset_id": progress.asset_id, "attempt": progress.attempt, "phase": "verifying"},
        )
        return {
            "generated_image": image,
            "progress": self._publish(
                progress.evolve(
                    phase="verifying",
                    attempts=progress.attempts + (attempt,),
                    intermediate_image=data_uri,
                    thinking=("Image generated, verifying against compliance rules",),
                )
            ),
        }

    async def _verify(self, state: Dict[str, Any]) -> Dict[str, Any]:
        progress: FixProgressState = state["progress"]
        options: FixOptions = state["options"]
        asset: Asset = state["asset"]
        compliance: ComplianceResult = state["compliance"]
        run = self._run_for(progress)
        current = progress.last_attempt

        try:
            result = await run_verification(
                provider=self.verifier,
                invoker=self.verify_invoker,
                generated_image=state["generated_image"],
                original_image=state["original_image"],
                role=asset.role,
                reference_image=state.get("reference_image"),
                violations=compliance.violations,
                listing_title=state.get("listing_title"),
                max_retries=options.max_retries,
            )
        except (ProviderCallError, ProviderTransportError) as e:
            kind, message = _error_details(e)
            logger.warning(
                f"Verification failed: {message}",
                extra={"asset_id": progress.asset_id, "attempt": progress.attempt, "error_kind": kind},
            )
            failed_attempt = current.model_copy(
                update={"status": "error", "error_kind": kind, "error_message": message}
            )
            return {
                "progress": self._publish(
                    progress.evolve(
                        phase="error",
                        attempts=progress.replace_last_attempt(failed_attempt),
                        error_kind=kind,
                        error_message=message,
                        thinking=(f"Verification failed: {message}",),
                    )
                )
            }

        satisfied = run.policy.is_satisfactory(result)
        result = result.model_copy(update={"is_satisfactory": satisfied})
        thinking: List[str] = list(result.thinking_steps)
        thinking.append(
            f"Verification score {result.score:g}/100 (threshold {run.policy.threshold:g}), "
            f"product match: {'yes' if result.product_match else 'no'}"
        )
        log_extra = {"asset_id": progress.asset_id, "attempt": progress.attempt}

        if run.cancelled.is_set():
            verified = current.model_copy(update={"verification": result, "status": "failed"})
            return {
                "progress": self._cancelled(
                    progress.evolve(
                        attempts=progress.replace_last_attempt(verified),
                        last_critique=result.critique or progress.last_critique,
                        thinking=thinking,
                    )
                )
            }

        if satisfied:
            passed = current.model_copy(update={"verification": result, "status": "passed"})
            run.asset.fixed_image = passed.generated_image
            logger.info(f"Fix accepted with score {result.score:g}", extra={**log_extra, "phase": "passed"})
            thinking.append("Fix accepted")
            return {
                "progress": self._publish(
                    progress.evolve(
                        phase="passed",
                        attempts=progress.replace_last_attempt(passed),
                        last_critique=result.critique or None,
                        thinking=thinking,
                    )
                )
            }

        rejected = current.model_copy(update={"verification": result, "status": "failed"})
        attempts = progress.replace_last_attempt(rejected)

        if progress.attempt < progress.max_attempts:
            logger.info(f"Fix rejected with score {result.score:g}, retrying", extra={**log_extra, "phase": "retrying"})
            if result.critique:
                thinking.append(f"Retrying with feedback: {result.critique}")
            else:
                thinking.append("Retrying with feedback")
            return {
                "feedback": result,
                "progress": self._publish(
                    progress.evolve(
                        phase="retrying",
                        attempt=progress.attempt + 1,
                        attempts=attempts,
                        last_critique=result.critique or None,
                        thinking=thinking,
                    )
                ),
            }

        logger.info(
            f"Fix rejected with score {result.score:g}, no attempts left",
            extra={**log_extra, "phase": "failed"},
        )
        thinking.append(f"No passing fix after {progress.max_attempts} attempts")
        return {
            "progress": self._publish(
                progress.evolve(
                    phase="failed",
                    attempts=attempts,
                    last_critique=result.critique or None,
                    thinking=thinking,
                )
            )
        }

    # -------------------------
    # internal helpers
    # -------------------------
    def _run_for(self, progress: FixProgressState) -> _Run:
        run = self._runs.get(progress.asset_id)
        if run is None or run.run_id != progress.run_id:
            raise FixNotFoundError(f"Fix run {progress.run_id} is no longer registered")
        return run

    def _publish(self, progress: FixProgressState) -> FixProgressState:
        self._latest[progress.asset_id] = progress
        return progress

    def _cancelled(self, progress: FixProgressState) -> FixProgressState:
        logger.info("Fix run cancelled", extra={"asset_id": progress.asset_id, "phase": "cancelled"})
        return self._publish(progress.evolve(phase="cancelled", thinking=("Fix cancelled",)))

    def _abandon(self, run: _Run, progress: FixProgressState) -> FixProgressState:
        if progress.is_terminal:
            return progress
        return self._cancelled(progress)


def _error_details(e: Exception) -> Tuple[ErrorKind, str]:
    # transport errors that outlived the invoker's budget carry no HTTP status
    if isinstance(e, ProviderCallError):
        return e.error_kind, e.message
    return "unknown", str(e)
