import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config, load_config

ROOT = Path(__file__).resolve().parent.parent
FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def stack_path():
    return str(ROOT / "config.yaml")


@pytest.fixture
def broken_stack_path():
    return str(FIXTURES / "broken_stack.yaml")


@pytest.fixture
def stack(stack_path):
    return Config.from_dict(load_config(stack_path))


def make_config(resources, outputs=None):
    return Config.from_dict({
        "team": "platform",
        "service": "uploads",
        "environment": "dev",
        "region": "eu-west-1",
        "aws_resources": resources,
        "outputs": outputs or {},
    })
