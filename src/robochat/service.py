import logging
from collections.abc import Iterator

from robochat.robot import Robot

logger = logging.getLogger(__name__)


class RobotService:
    """Registry of the robots one application serves, looked up by name.

    Create one per application (or per test) and pass it to whatever
    routes conversations; there is no process-wide instance.

    Example::

        service = RobotService()
        service.register(ChatRobot(config, provider, tools))
        robot = service.get("forms")
    """

    def __init__(self, robots: list[Robot] | None = None):
        self._robots: dict[str, Robot] = {}
        for robot in robots or []:
            self.register(robot)

    def register(self, robot: Robot, *, replace: bool = False) -> Robot:
        if robot.name in self._robots and not replace:
            raise ValueError(f"A robot named {robot.name!r} is already registered")
        self._robots[robot.name] = robot
        logger.info(f"Registered robot {robot.name}")
        return robot

    def get(self, name: str) -> Robot:
        try:
            return self._robots[name]
        except KeyError:
            raise KeyError(
                f"No robot named {name!r}. Available robots: "
                f"{', '.join(self._robots) or 'none'}"
            ) from None

    def names(self) -> list[str]:
        return list(self._robots)

    def all(self) -> list[Robot]:
        return list(self._robots.values())

    def __contains__(self, name: str) -> bool:
        return name in self._robots

    def __len__(self) -> int:
        return len(self._robots)

    def __iter__(self) -> Iterator[Robot]:
        return iter(list(self._robots.values()))
