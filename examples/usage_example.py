"""
Automation engine usage example

Run from the repository root:  python examples/usage_example.py
"""
import asyncio
from datetime import timedelta
from pathlib import Path
import logging

from automation_engine.config import Settings, configure_logging
from automation_engine.models.execution import DomainEvent
from automation_engine.models.workflow import utcnow
from automation_engine.runtime import Runtime


WORKFLOWS_DIR = Path(__file__).parent / "workflows"


class ManualClock:
    """Lets the example skip over a one-day delay"""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now


async def example_new_client(runtime: Runtime):
    print("\n=== New client ===")
    executions = await runtime.dispatcher.dispatch(DomainEvent(
        type="client_created",
        payload={"clientId": 41, "name": "Marta Vidal", "email": "marta@example.com"},
    ))
    for execution in executions:
        print(f"{execution.workflow_id}: {execution.status.value}")
        for entry in execution.history:
            print(f"  {entry.node_id} -> {entry.outcome}")


async def example_quote_approval(runtime: Runtime):
    print("\n=== Large quote ===")
    [execution] = await runtime.dispatcher.dispatch(DomainEvent(
        type="service_created",
        payload={"serviceId": 7, "amount": 1800, "email": "marta@example.com"},
    ))
    print(f"Waiting for approval: {execution.pending_approval.message}")

    pending = await runtime.gateway.list_pending_approvals()
    print(f"Pending approvals: {len(pending)}")

    execution = await runtime.gateway.decide(execution.id, "approved", "owner")
    print(f"After decision: {execution.status.value}, last node {execution.history[-1].node_id}")


async def example_appointment_reminder(runtime: Runtime, clock: ManualClock):
    print("\n=== Appointment reminder ===")
    [execution] = await runtime.dispatcher.dispatch(DomainEvent(
        type="appointment_created",
        payload={"phone": "+34 600 123 456", "date": "2024-05-02"},
    ))
    print(f"Paused until {execution.pending_resume_at.isoformat()}")

    clock.now += timedelta(days=1)
    resumed = await runtime.scheduler.run_once()
    execution = await runtime.executions.get(execution.id)
    print(f"Resumed {resumed}; WhatsApp link: {execution.context['whatsapp']['url']}")


async def main():
    configure_logging("WARNING")
    logging.getLogger("automation.events").setLevel(logging.WARNING)

    clock = ManualClock()
    runtime = Runtime.in_memory(Settings(scheduler_enabled=False), clock=clock)
    await runtime.load_definitions(WORKFLOWS_DIR)

    await example_new_client(runtime)
    await example_quote_approval(runtime)
    await example_appointment_reminder(runtime, clock)

    print("\nMetrics:", runtime.metrics.snapshot()["counters"])


if __name__ == "__main__":
    asyncio.run(main())
