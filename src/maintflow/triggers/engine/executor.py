import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx

from maintflow.platform.config import Settings, settings as default_settings
from maintflow.platform import metrics
from maintflow.triggers.actions.base import ActionContext, ActionHandler
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.engine.templating import interpolate_parameters
from maintflow.triggers.errors import HandlerNotFoundError, TransientActionError
from maintflow.triggers.schemas import ActionResult, ExecutionOutcome, FlowAction, HandlerResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient action failures."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt: base, 2*base, 4*base, ... capped."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, config.FLOW_ACTION_MAX_ATTEMPTS),
            base_delay=config.FLOW_RETRY_BASE_DELAY_SECONDS,
            max_delay=config.FLOW_RETRY_MAX_DELAY_SECONDS,
        )


class ActionExecutor:
    """
    Runs a rule's actions in order through the handler registry.

    Each action is isolated: a missing handler, a handler exception, a
    timeout or a reported failure becomes a failed ActionResult and never
    escapes. Transient failures (timeouts, connection errors,
    TransientActionError, HandlerResult.transient) are retried with backoff;
    anything else fails on the first attempt.

    Aggregate policy: by default every action runs and the outcome is
    unsuccessful if any action failed. With stop_on_failure the first
    failure ends the rule and the remaining actions are reported as skipped.

    Delivery is at-least-once: a retried handler may have completed its side
    effect before the attempt that timed out.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        stop_on_failure: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout if timeout is not None else default_settings.FLOW_ACTION_TIMEOUT_SECONDS
        self.stop_on_failure = (
            stop_on_failure if stop_on_failure is not None else default_settings.FLOW_STOP_ON_FAILURE
        )
        self._sleep = sleep

    async def run(
        self,
        actions: Sequence[FlowAction],
        context: ActionContext,
        stop_on_failure: Optional[bool] = None,
    ) -> ExecutionOutcome:
        """
        Execute actions strictly by their order.

        Args:
            actions: The rule's actions
            context: Triggering event and rule
            stop_on_failure: Per-rule override of the engine policy (None = engine default)
        """
        stop = self.stop_on_failure if stop_on_failure is None else stop_on_failure
        results = []
        halted = False

        for action in sorted(actions, key=lambda a: a.order):
            if halted:
                results.append(ActionResult(
                    action_type=action.type,
                    order=action.order,
                    success=False,
                    skipped=True,
                    message="Skipped: an earlier action failed and the rule stops on failure",
                ))
                continue

            result = await self._run_action(action, context)
            results.append(result)
            if not result.success and stop:
                halted = True

        return ExecutionOutcome(success=all(r.success for r in results), action_results=results)

    async def _run_action(self, action: FlowAction, context: ActionContext) -> ActionResult:
        handler = self.registry.resolve(action.type)
        if handler is None:
            error = HandlerNotFoundError(action.type, self.registry.types())
            logger.error(f"{error.message} (rule '{context.rule_name}', action #{action.order})")
            metrics.ACTION_ATTEMPTS_TOTAL.labels(action_type=action.type, outcome="not_found").inc()
            return ActionResult(action_type=action.type, order=action.order, success=False,
                                message=error.message, attempts=0)

        parameters = interpolate_parameters(action.parameters, context.event_data)
        action_context = context.for_action(action.order)
        policy = self.retry_policy
        started = time.perf_counter()
        attempt = 0

        while True:
            attempt += 1
            result = await self._attempt(handler, action.type, parameters, action_context)

            if result.success:
                metrics.ACTION_ATTEMPTS_TOTAL.labels(action_type=action.type, outcome="success").inc()
                return ActionResult(
                    action_type=action.type, order=action.order, success=True,
                    message=result.message, attempts=attempt,
                    duration_ms=(time.perf_counter() - started) * 1000,
                )

            outcome = "transient" if result.transient else "failure"
            metrics.ACTION_ATTEMPTS_TOTAL.labels(action_type=action.type, outcome=outcome).inc()

            if not result.transient or attempt >= policy.max_attempts:
                message = result.message
                if result.transient:
                    message = f"{message} (gave up after {attempt} attempts)"
                logger.error(
                    f"Action '{action.type}' #{action.order} failed for rule '{context.rule_name}': {message}"
                )
                return ActionResult(
                    action_type=action.type, order=action.order, success=False,
                    message=message, attempts=attempt, transient=result.transient,
                    duration_ms=(time.perf_counter() - started) * 1000,
                )

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Action '{action.type}' #{action.order} attempt {attempt}/{policy.max_attempts} "
                f"failed transiently ({result.message}); retrying in {delay:.2f}s"
            )
            await self._sleep(delay)

    async def _attempt(self, handler: ActionHandler, action_type: str,
                       parameters: Dict[str, Any], context: ActionContext) -> HandlerResult:
        """One bounded handler call, with exceptions mapped to HandlerResult."""
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(handler.execute(parameters, context), timeout=self.timeout)
        except asyncio.TimeoutError:
            return HandlerResult.failure(f"Timed out after {self.timeout}s", transient=True)
        except TransientActionError as e:
            return HandlerResult.failure(e.message, transient=True)
        except (OSError, httpx.TransportError) as e:
            return HandlerResult.failure(f"{type(e).__name__}: {e}", transient=True)
        except Exception as e:
            logger.error(f"Handler for '{action_type}' raised: {e}", exc_info=True)
            return HandlerResult.failure(f"Handler raised {type(e).__name__}: {e}")
        finally:
            metrics.ACTION_DURATION_SECONDS.labels(action_type=action_type).observe(time.perf_counter() - start)

        if not isinstance(result, HandlerResult):
            return HandlerResult.failure(
                f"Handler returned {type(result).__name__}, expected HandlerResult"
            )
        return result
