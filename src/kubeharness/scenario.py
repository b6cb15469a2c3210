"""Given / When / Then scenario execution with guaranteed cleanup.

A scenario runs three optional phases in order. Steps in every phase share a
``ScenarioContext`` holding the working namespace and the finalizers that
steps registered for the objects they provisioned. Whatever happens in the
phases, every registered finalizer runs exactly once before the result is
reported, in reverse registration order so dependents are removed before
what they depend on.

Example:
    >>> from kubeharness.scenario import Scenario, setups, conditions
    >>> result = Scenario(
    ...     name="Simple",
    ...     given=setups(created_manifests(config, "deployment.yaml")),
    ...     when=conditions(pods_are_ready(core_api, 1, "app=proxy")),
    ... ).run()
    >>> result.passed
    True
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from kubeharness.errors import FinalizerError, ScenarioFailedError, StepError
from kubeharness.tracing import get_tracer, harness_span

logger = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "default"

PHASES = ("given", "when", "then")

Finalizer = Callable[[], object]


class ScenarioContext:
    """Per-run state shared by the steps of one scenario.

    Attributes:
        namespace: Namespace the scenario's objects live in.
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.namespace = namespace
        self._finalizers: list[Finalizer] = []

    @property
    def finalizers(self) -> tuple[Finalizer, ...]:
        """Registered finalizers, in registration order."""
        return tuple(self._finalizers)

    def add_finalizer(self, finalizer: Finalizer) -> None:
        """Register a cleanup action to run when the scenario ends."""
        self._finalizers.append(finalizer)

    def run_finalizers(self) -> list[FinalizerError]:
        """Drain and run every finalizer, last registered first.

        A failing finalizer never stops the ones after it. The context holds
        no finalizers afterwards, so a second call is a no-op.

        Returns:
            Errors of the failed finalizers, in the order they ran.
        """
        errors: list[FinalizerError] = []
        while self._finalizers:
            index = len(self._finalizers) - 1
            finalizer = self._finalizers.pop()
            try:
                finalizer()
            except Exception as e:
                logger.warning(
                    "scenario.finalizer_failed",
                    index=index,
                    namespace=self.namespace,
                    error=str(e),
                )
                errors.append(FinalizerError(index, e))
        return errors


Step = Callable[[ScenarioContext], None]
Setup = Step
Condition = Step
Check = Step


def _sequence(steps: tuple[Step, ...]) -> Step:
    def run_all(ctx: ScenarioContext) -> None:
        for step in steps:
            step(ctx)

    return run_all


def setups(*steps: Setup) -> Setup:
    """Compose setup steps; the first failure aborts the rest."""
    return _sequence(steps)


def conditions(*steps: Condition) -> Condition:
    """Compose condition steps; the first failure aborts the rest."""
    return _sequence(steps)


def checks(*steps: Check) -> Check:
    """Compose check steps; the first failure aborts the rest."""
    return _sequence(steps)


@dataclass
class ScenarioResult:
    """Outcome of one scenario run.

    Attributes:
        name: Scenario name.
        phase_error: Failure of the first failing phase, if any.
        finalizer_errors: Failures of finalizers, in the order they ran.
    """

    name: str
    phase_error: StepError | None = None
    finalizer_errors: list[FinalizerError] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.phase_error is None and not self.finalizer_errors

    @property
    def errors(self) -> list[Exception]:
        """Phase failure first, then finalizer failures."""
        errors: list[Exception] = []
        if self.phase_error is not None:
            errors.append(self.phase_error)
        errors.extend(self.finalizer_errors)
        return errors

    def raise_for_failure(self) -> None:
        """Raise ``ScenarioFailedError`` unless the scenario passed."""
        if not self.passed:
            raise ScenarioFailedError(self)


@dataclass
class Scenario:
    """A named end-to-end test of Given / When / Then steps.

    Attributes:
        name: Scenario name, used in logs, spans and failure messages.
        given: Setup step provisioning state.
        when: Condition step waiting for or exercising state.
        then: Check step verifying outcomes.
        namespace: Namespace the context starts in.
    """

    name: str
    given: Setup | None = None
    when: Condition | None = None
    then: Check | None = None
    namespace: str = DEFAULT_NAMESPACE

    def run(self) -> ScenarioResult:
        """Run the phases in order, then drain the finalizers.

        Returns:
            The scenario result. Failures are reported in it, never raised.
        """
        ctx = ScenarioContext(namespace=self.namespace)
        result = ScenarioResult(name=self.name)
        tracer = get_tracer()
        log = logger.bind(scenario=self.name)

        log.info("scenario.started", namespace=ctx.namespace)
        try:
            for phase, step in zip(PHASES, (self.given, self.when, self.then)):
                if step is None:
                    continue
                try:
                    with harness_span(
                        tracer, f"scenario.{phase}", namespace=ctx.namespace, name=self.name
                    ):
                        step(ctx)
                except Exception as e:
                    result.phase_error = StepError(phase, e)
                    log.error("scenario.phase_failed", phase=phase, error=str(e))
                    break
        finally:
            result.finalizer_errors.extend(ctx.run_finalizers())

        log.info(
            "scenario.finished",
            passed=result.passed,
            finalizer_errors=len(result.finalizer_errors),
        )
        return result

    def run_or_fail(self) -> ScenarioResult:
        """Run the scenario and raise ``ScenarioFailedError`` if it failed."""
        result = self.run()
        result.raise_for_failure()
        return result


__all__ = [
    "Check",
    "Condition",
    "Finalizer",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "Setup",
    "Step",
    "checks",
    "conditions",
    "setups",
]
