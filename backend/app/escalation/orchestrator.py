"""
orchestrator.py — Step-wise, timed, multi-channel escalation per alert.

This is the central coordinator that:
    1. Selects the escalation policy for an alert (type + severity)
    2. Dispatches each step to role-filtered contacts on the step's channels
    3. Waits for acknowledgment up to the step timeout
    4. Advances to the next step on timeout, or stops on acknowledgment
    5. Records one NotificationAttempt per (contact, channel, step)

═══════════════════════════════════════════════════════════════════════════
ESCALATION FLOW
═══════════════════════════════════════════════════════════════════════════

    initiate(alert)
        │
        ├── no matching policy ──► NoPolicyMatched (alert stays PENDING)
        │
        ▼
    ┌─────────────────────┐
    │  wait step.wait     │  timer (skipped when wait == 0; step 1 with
    │                     │  wait == 0 is dispatched inside initiate)
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  DISPATCHING(k)     │  contacts by role, ascending priority
    │                     │  × channels, fan-out joined with gather
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  AWAITING_ACK(k)    │  only if require_ack and timeout > 0
    │                     │  ack → ACKNOWLEDGED, timer cancelled
    └─────────┬───────────┘
              ▼ timeout
        k < N ? next step : EXHAUSTED

═══════════════════════════════════════════════════════════════════════════
ACK vs TIMEOUT
═══════════════════════════════════════════════════════════════════════════

Every transition of one alert happens under that alert's asyncio.Lock.
``acknowledge`` sets the terminal state and cancels the pending timer;
the driver re-checks the terminal state after every wait, so a timer
that fires after an acknowledgment never dispatches.

═══════════════════════════════════════════════════════════════════════════
DELIVERY
═══════════════════════════════════════════════════════════════════════════

    • Sync adapters run in a worker thread, async adapters are awaited;
      both are bounded by DELIVERY_TIMEOUT_SECONDS
    • Timeout, DeliveryFailed or any adapter error → ``failed`` attempt
    • Contacts without an address for a channel are skipped (no row)
    • Contacts whose notify_on excludes the severity are skipped
    • Channels disabled in the settings snapshot are skipped
    • Dry run: no adapter is called, every attempt is ``sent``
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import DeliveryFailed, NoPolicyMatched, NotFoundError
from backend.app.escalation.channels import email_alert, sms_gateway, voice_call, whatsapp
from backend.app.escalation.messages import NotificationMessage, build_message
from backend.app.escalation.models import (
    Alert,
    AttemptOutcome,
    Channel,
    Contact,
    EscalationPolicy,
    EscalationState,
    EscalationStep,
    InitiateResult,
    NotificationAttempt,
)
from backend.app.escalation.timers import TimerFactory, make_timer_factory
from backend.app.settings_bus.bus import notification_settings_changed
from backend.app.stores.memory import AlertStore, ContactStore, PolicyStore

logger = logging.getLogger(__name__)

ChannelAdapter = Callable[[Contact, NotificationMessage], Any]


def default_adapters(config: Optional[Settings] = None) -> Dict[Channel, ChannelAdapter]:
    """Channel → send function, bound to the configured providers."""
    config = config or get_settings()
    return {
        Channel.SMS:      partial(sms_gateway.send, provider=config.SMS_PROVIDER),
        Channel.VOICE:    partial(voice_call.send, provider=config.VOICE_PROVIDER),
        Channel.EMAIL:    partial(email_alert.send, provider=config.EMAIL_PROVIDER),
        Channel.WHATSAPP: partial(whatsapp.send, provider=config.WHATSAPP_PROVIDER),
    }


@dataclass
class _EscalationRun:
    """Driver-side state of one escalating alert."""
    alert: Alert
    policy: EscalationPolicy
    dry_run: bool
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timer: Any = None
    task: Optional[asyncio.Task] = None
    done: asyncio.Event = field(default_factory=asyncio.Event)


class EscalationOrchestrator:
    """
    Runs one independent escalation per alert.

    Parameters
    ----------
    policies, contacts, alerts : stores
        Collaborators for policy selection, roster lookup and audit writes.
    adapters : dict[Channel, callable] | None
        Channel send functions; defaults to the simulation adapters.
    timer_factory : callable | None
        ``minutes → EscalationTimer``; defaults to wall-clock timers scaled
        by ESCALATION_SECONDS_PER_MINUTE.
    delivery_timeout : float | None
        Per-call adapter timeout in seconds.
    """

    def __init__(
        self,
        *,
        policies: PolicyStore,
        contacts: ContactStore,
        alerts: AlertStore,
        adapters: Optional[Dict[Channel, ChannelAdapter]] = None,
        timer_factory: Optional[TimerFactory] = None,
        delivery_timeout: Optional[float] = None,
        ack_base_url: Optional[str] = None,
        config: Optional[Settings] = None,
    ):
        config = config or get_settings()
        self._policies = policies
        self._contacts = contacts
        self._alerts = alerts
        self._adapters = adapters or default_adapters(config)
        self._timer_factory = timer_factory or make_timer_factory(
            config.ESCALATION_SECONDS_PER_MINUTE
        )
        self._delivery_timeout = (
            delivery_timeout if delivery_timeout is not None else config.DELIVERY_TIMEOUT_SECONDS
        )
        self._ack_base_url = ack_base_url or config.ACK_BASE_URL
        self._enabled_channels: Set[Channel] = set(Channel)
        # live escalations only; finished runs are evicted by the driver
        self._runs: Dict[str, _EscalationRun] = {}

    # ═══════════════════════════════════════════════════════════════════
    # Public API
    # ═══════════════════════════════════════════════════════════════════

    async def initiate(self, alert: Alert, dry_run: bool = False) -> InitiateResult:
        """
        Start escalating ``alert``.

        Step 1 is dispatched before returning when its wait is 0; later
        steps continue in a background task.

        Raises
        ------
        NoPolicyMatched
            No active policy covers the alert type and severity.
        """
        policy = self._policies.select(alert.type, alert.severity)
        if policy is None:
            logger.warning(
                "No escalation policy for alert %s (%s/%s)",
                alert.alert_id, alert.type.value, alert.severity.value,
                extra={"alert_id": alert.alert_id},
            )
            raise NoPolicyMatched(alert.alert_id, alert.type.value, alert.severity.value)

        existing = self._runs.get(alert.alert_id)
        if alert.is_terminal or (existing and not existing.done.is_set()):
            logger.info(
                "Alert %s already escalating or closed; initiate ignored",
                alert.alert_id, extra={"alert_id": alert.alert_id},
            )
            return InitiateResult(False, 0, False, policy.policy_id)

        alert.escalation_policy_id = policy.policy_id
        self._alerts.save(alert)
        run = _EscalationRun(alert=alert, policy=policy, dry_run=dry_run)
        self._runs[alert.alert_id] = run

        logger.info(
            "Escalation started for alert %s with policy %s (%d steps%s)",
            alert.alert_id, policy.policy_id, len(policy.steps),
            ", dry run" if dry_run else "",
            extra={"alert_id": alert.alert_id, "vessel_id": alert.vessel_id},
        )

        first = policy.steps[0]
        sent = 0
        dispatched_first = first.wait_minutes <= 0
        if dispatched_first:
            try:
                async with run.lock:
                    sent = await self._execute_step(run, first)
            except Exception:
                self._abandon(run)
                raise

        run.task = asyncio.create_task(
            self._drive(run, dispatched_first),
            name=f"escalation-{alert.alert_id}",
        )
        return InitiateResult(
            success=True,
            notifications_sent=sent,
            escalation_started=True,
            policy_id=policy.policy_id,
        )

    async def acknowledge(self, alert_id: str, acknowledged_by: Optional[str] = None) -> bool:
        """
        Acknowledge an alert and halt its escalation.

        Returns
        -------
        bool
            True if this call acknowledged the alert, False when the alert
            was already terminal (no-op).
        """
        run = self._runs.get(alert_id)
        alert = run.alert if run else self._alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id=alert_id)

        # no run means no driver to race
        async with run.lock if run else nullcontext():
            if alert.is_terminal:
                logger.info(
                    "Alert %s already %s; acknowledgment ignored",
                    alert_id, alert.escalation_state.value,
                    extra={"alert_id": alert_id},
                )
                return False

            alert.acknowledged = True
            alert.acknowledged_by = acknowledged_by
            alert.acknowledged_at = datetime.now(timezone.utc)
            alert.escalation_state = EscalationState.ACKNOWLEDGED
            self._alerts.save(alert)
            if run and run.timer is not None:
                run.timer.cancel()

        logger.info(
            "Alert %s acknowledged by %s at step %d",
            alert_id, acknowledged_by or "unknown", alert.current_step,
            extra={"alert_id": alert_id, "step": alert.current_step},
        )
        return True

    def status(self, alert_id: str) -> Dict[str, Any]:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id=alert_id)
        run = self._runs.get(alert_id)
        policy = self._policies.get(alert.escalation_policy_id) if alert.escalation_policy_id else None
        attempts = self._alerts.attempts_for(alert_id)
        return {
            "alertId": alert_id,
            "state": alert.escalation_state.value,
            "currentStep": alert.current_step,
            "totalSteps": len(policy.steps) if policy else 0,
            "policyId": alert.escalation_policy_id,
            "acknowledged": alert.acknowledged,
            "acknowledgedBy": alert.acknowledged_by,
            "running": bool(run and not run.done.is_set()),
            "dryRun": run.dry_run if run else any(a.dry_run for a in attempts),
            "attempts": len(attempts),
        }

    def attempts(self, alert_id: str) -> List[NotificationAttempt]:
        if self._alerts.get(alert_id) is None:
            raise NotFoundError("Alert", alert_id=alert_id)
        return self._alerts.attempts_for(alert_id)

    async def wait_finished(self, alert_id: str, timeout: Optional[float] = None) -> None:
        """Block until the alert's escalation reaches a terminal state."""
        run = self._runs.get(alert_id)
        if run is None:
            return
        await asyncio.wait_for(run.done.wait(), timeout=timeout)

    async def shutdown(self) -> None:
        """Cancel every running escalation (process stop)."""
        tasks = []
        for run in list(self._runs.values()):
            if run.timer is not None:
                run.timer.cancel()
            if run.task is not None and not run.task.done():
                run.task.cancel()
                tasks.append(run.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running escalation(s)", len(tasks))

    def apply_settings(self, snapshot: Any, previous: Any = None) -> None:
        """Settings-bus handler: follow the per-channel enable flags."""
        if not notification_settings_changed(snapshot, previous):
            return
        enabled = {Channel(name) for name in snapshot.notifications.enabled_channels()}
        if enabled != self._enabled_channels:
            logger.info(
                "Escalation channels enabled: %s",
                ", ".join(sorted(c.value for c in enabled)) or "none",
            )
        self._enabled_channels = enabled

    # ═══════════════════════════════════════════════════════════════════
    # Driver
    # ═══════════════════════════════════════════════════════════════════

    def _abandon(self, run: _EscalationRun) -> None:
        """Undo a run whose first dispatch raised, so the alert can be retried."""
        alert = run.alert
        alert.current_step = 0
        alert.escalation_state = EscalationState.PENDING
        self._alerts.save(alert)
        run.done.set()
        if self._runs.get(alert.alert_id) is run:
            del self._runs[alert.alert_id]
        logger.error(
            "Escalation of alert %s failed before step 1 was dispatched",
            alert.alert_id, extra={"alert_id": alert.alert_id},
        )

    async def _drive(self, run: _EscalationRun, dispatched_first: bool) -> None:
        alert = run.alert
        try:
            for index, step in enumerate(run.policy.steps):
                if not (index == 0 and dispatched_first):
                    if step.wait_minutes > 0 and not await self._wait(run, step.wait_minutes):
                        return
                    async with run.lock:
                        if alert.is_terminal:
                            return
                        await self._execute_step(run, step)

                if step.waits_for_ack:
                    async with run.lock:
                        if alert.is_terminal:
                            return
                        alert.escalation_state = EscalationState.AWAITING_ACK
                        self._alerts.save(alert)
                    if not await self._wait(run, step.timeout_minutes):
                        return
                    logger.info(
                        "Alert %s: no acknowledgment within %g min at step %d",
                        alert.alert_id, step.timeout_minutes, step.step_number,
                        extra={"alert_id": alert.alert_id, "step": step.step_number},
                    )

            async with run.lock:
                if not alert.is_terminal:
                    alert.escalation_state = EscalationState.EXHAUSTED
                    self._alerts.save(alert)
                    logger.warning(
                        "Alert %s exhausted all %d steps without acknowledgment",
                        alert.alert_id, len(run.policy.steps),
                        extra={"alert_id": alert.alert_id},
                    )
        except asyncio.CancelledError:
            logger.info("Escalation of alert %s cancelled", alert.alert_id)
            raise
        except Exception:
            logger.exception(
                "Escalation of alert %s aborted", alert.alert_id,
                extra={"alert_id": alert.alert_id},
            )
        finally:
            run.timer = None
            run.done.set()
            if self._runs.get(alert.alert_id) is run:
                del self._runs[alert.alert_id]

    async def _wait(self, run: _EscalationRun, minutes: float) -> bool:
        """Wait ``minutes``; False when cancelled or the alert closed meanwhile."""
        timer = self._timer_factory(minutes)
        run.timer = timer
        if run.alert.is_terminal:
            return False
        try:
            expired = await timer.wait()
        finally:
            if run.timer is timer:
                run.timer = None
        return expired and not run.alert.is_terminal

    async def _execute_step(self, run: _EscalationRun, step: EscalationStep) -> int:
        """Dispatch one step; returns the number of ``sent`` attempts."""
        alert = run.alert
        alert.current_step = max(alert.current_step, step.step_number)
        alert.escalation_state = EscalationState.DISPATCHING
        self._alerts.save(alert)

        message = build_message(alert, step, len(run.policy.steps), self._ack_base_url)
        contacts = self._contacts.for_vessel(alert.vessel_id, roles=step.contact_roles)

        jobs = []
        for contact in contacts:
            if not contact.wants(alert.severity):
                continue
            for channel in step.channels:
                if channel not in self._enabled_channels:
                    continue
                if not contact.address_for(channel):
                    logger.debug(
                        "Contact %s has no %s address; skipped",
                        contact.contact_id, channel.value,
                    )
                    continue
                jobs.append(self._deliver(run, step, contact, channel, message))

        attempts = await asyncio.gather(*jobs)
        sent = sum(1 for a in attempts if a.outcome is AttemptOutcome.SENT)

        logger.info(
            "Alert %s step %d/%d: %d sent, %d failed",
            alert.alert_id, step.step_number, len(run.policy.steps),
            sent, len(attempts) - sent,
            extra={"alert_id": alert.alert_id, "step": step.step_number},
        )
        return sent

    async def _deliver(
        self,
        run: _EscalationRun,
        step: EscalationStep,
        contact: Contact,
        channel: Channel,
        message: NotificationMessage,
    ) -> NotificationAttempt:
        outcome = AttemptOutcome.SENT
        error: Optional[str] = None
        start = time.perf_counter()
        log_extra = {
            "alert_id": run.alert.alert_id,
            "channel": channel.value,
            "step": step.step_number,
        }

        if run.dry_run:
            logger.info(
                "[DRY RUN] %s → %s (%s)",
                channel.value, contact.contact_id, contact.name, extra=log_extra,
            )
        else:
            adapter = self._adapters.get(channel)
            try:
                if adapter is None:
                    raise DeliveryFailed(channel.value, contact.contact_id, "no adapter configured")
                if inspect.iscoroutinefunction(adapter):
                    call = adapter(contact, message)
                else:
                    call = asyncio.to_thread(adapter, contact, message)
                await asyncio.wait_for(call, timeout=self._delivery_timeout)
            except DeliveryFailed as exc:
                outcome, error = AttemptOutcome.FAILED, exc.message
                logger.warning("%s", exc.message, extra=log_extra)
            except asyncio.TimeoutError:
                outcome = AttemptOutcome.FAILED
                error = f"no response within {self._delivery_timeout:g}s"
                logger.warning(
                    "%s delivery to %s timed out", channel.value, contact.contact_id,
                    extra=log_extra,
                )
            except Exception as exc:
                outcome, error = AttemptOutcome.FAILED, str(exc)
                logger.exception(
                    "%s adapter raised for %s", channel.value, contact.contact_id,
                    extra=log_extra,
                )

        attempt = NotificationAttempt(
            alert_id=run.alert.alert_id,
            step_number=step.step_number,
            contact_id=contact.contact_id,
            channel=channel,
            outcome=outcome,
            dry_run=run.dry_run,
            error_message=error,
        )
        self._alerts.record_attempt(attempt)
        logger.debug(
            "Attempt %s/%s → %s in %.1fms",
            channel.value, contact.contact_id, outcome.value,
            (time.perf_counter() - start) * 1000,
            extra=log_extra,
        )
        return attempt
