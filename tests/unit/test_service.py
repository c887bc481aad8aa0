import pytest

from robochat.config import RobotConfig
from robochat.provider import ParrotProvider
from robochat.robot import ChatRobot
from robochat.service import RobotService


def _robot(name):
    return ChatRobot(RobotConfig(name=name, model="parrot"), ParrotProvider())


def test_register_and_get():
    service = RobotService()
    parrot = service.register(_robot("parrot"))

    assert service.get("parrot") is parrot
    assert "parrot" in service
    assert service.names() == ["parrot"]


def test_initial_robots():
    service = RobotService([_robot("a"), _robot("b")])
    assert service.names() == ["a", "b"]
    assert len(service) == 2
    assert [r.name for r in service] == ["a", "b"]
    assert [r.name for r in service.all()] == ["a", "b"]


def test_duplicate_name_rejected_unless_replacing():
    service = RobotService([_robot("a")])
    with pytest.raises(ValueError, match="already registered"):
        service.register(_robot("a"))

    replacement = _robot("a")
    service.register(replacement, replace=True)
    assert service.get("a") is replacement


def test_unknown_robot_lists_available():
    service = RobotService([_robot("a")])
    with pytest.raises(KeyError, match="Available robots: a"):
        service.get("b")


def test_services_are_independent():
    first = RobotService([_robot("a")])
    second = RobotService()
    assert "a" in first
    assert "a" not in second
