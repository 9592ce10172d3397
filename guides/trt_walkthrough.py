"""Walk a patient through the TRT assessment using the in-memory repository."""

import asyncio
from pathlib import Path

from assessflow import FlowRunner, load_flow_file, publish_flow
from assessflow.persistence import InMemoryFlowRepository

FLOW_FILE = Path(__file__).with_name("trt_assessment.yaml")

ANSWERS = {
    "welcome": None,
    "age": "34",
    "symptoms": ["low_energy", "mood_changes"],
    "severity": "moderate",
    "lab_info": None,
    "treatment": "trt_basic",
    "provider_review": None,
}


async def main():
    repository = InMemoryFlowRepository()
    flow = publish_flow(load_flow_file(FLOW_FILE))
    await repository.save_flow(flow)

    runner = FlowRunner(repository)
    run = await runner.start(flow, subject_id="patient-1")
    print(f"Started run {run.id}")

    step = flow.start_step
    while step is not None:
        result = await runner.submit(run.id, step.id, ANSWERS.get(step.id))
        print(f"  {step.id}: stored {result.response.data}")
        step = result.next_step

    status = await runner.status(run.id)
    print(f"Run finished with status {status.value}")


if __name__ == "__main__":
    asyncio.run(main())
