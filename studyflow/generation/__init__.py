"""Oracle access and structured generation.

Pipeline:
1. Prompt builders render the task and retrieved chunks
2. StructuredGenerator calls the injected oracle and extracts JSON
3. Pydantic contracts validate the result, with retry on rejection

Usage:
    from studyflow.generation import GatewayOracle, StructuredGenerator

    generator = StructuredGenerator(GatewayOracle.from_settings())
    plan = await generator.generate(system, user, validator=PlanResult.model_validate)
"""

from .oracle import GatewayOracle, GenerationOracle, Message
from .structured import CORRECTION_PROMPT, StructuredGenerator, extract_json

__all__ = [
    "CORRECTION_PROMPT",
    "GatewayOracle",
    "GenerationOracle",
    "Message",
    "StructuredGenerator",
    "extract_json",
]
