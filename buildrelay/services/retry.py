"""Fix-and-recompile retry after a remote build failure."""

import structlog

from buildrelay.jobs.errors import GenerationError
from buildrelay.jobs.models import GeneratedCode
from buildrelay.services.collaborators import CodeGenerator

logger = structlog.get_logger(__name__)

RETRY_PROMPT_TEMPLATE = (
    "The compilation failed with the following error. Please analyze this error, "
    "fix the code, and then start the compilation again. Error: \n\n{message}"
)

AUTO_FIX_NOTICE = (
    "I've detected a compilation error. I will try to fix it and re-compile."
)


class RetryCoordinator:
    """
    Turns a build failure into new code via the code generator.

    The retry budget is explicit: `max_retries` fix cycles per job, counted
    by the caller through `attempt` (1 for the original submission).
    """

    def __init__(self, generator: CodeGenerator, max_retries: int = 1):
        self.generator = generator
        self.max_retries = max_retries

    def should_retry(self, attempt: int) -> bool:
        """True if the job that just failed on `attempt` may be retried."""
        return attempt <= self.max_retries

    @staticmethod
    def build_prompt(failure_message: str) -> str:
        return RETRY_PROMPT_TEMPLATE.format(message=failure_message)

    async def regenerate(self, failure_message: str, existing_code: str) -> GeneratedCode:
        """
        Ask the generator to fix the code for a failed build.

        Raises:
            GenerationError: If the generator fails
        """
        prompt = self.build_prompt(failure_message)
        logger.info("retry_generation_started", prompt_length=len(prompt))
        try:
            return await self.generator.generate(prompt, existing_code)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Code generation failed: {e}") from e
