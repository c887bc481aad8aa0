import logging

from pydantic import BaseModel, Field

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

DEFAULT_FOLLOW_UP_TEMPLATE = (
    'Follow up on: "{message}". '
    'Is there anything else I can help you with?'
)


class RobotConfig(BaseModel):
    """Static settings for one chat robot.

    Args:
        name: Name the robot is registered and logged under.
        model: Model name sent to the provider.
        system_prompt: Instructions sent ahead of every conversation.
        max_tokens: Completion length limit per provider stream.
        max_turns: Provider round-trips per run.  Above 1, tool results
            are sent back to the model and its reply continues the output.
        timeout: Seconds a run may take before it is aborted.  ``None``
            means no bound.
        follow_up_template: Prompt for the second part of a multi-part
            reply.  ``{message}`` is replaced with the original message.
        follow_up_delay: Seconds to wait before the follow-up run starts.
    """

    name: str
    model: str
    system_prompt: str = ""
    max_tokens: int | None = 1024
    max_turns: int = Field(default=1, ge=1)
    timeout: float | None = Field(default=None, gt=0)
    follow_up_template: str = DEFAULT_FOLLOW_UP_TEMPLATE
    follow_up_delay: float = Field(default=0.0, ge=0)

    def follow_up_prompt(self, message: str) -> str:
        return self.follow_up_template.format(message=message)


def configure_logging(
    level: int = logging.INFO,
    log_file: str | None = None,
) -> None:
    """Send robochat logs to stderr, and optionally to *log_file*.

    Call once from the application entry point.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )
