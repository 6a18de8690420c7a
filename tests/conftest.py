# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import copy

import pytest

from dynamik.config import DynamikConfig, reset_config, set_config

OBJECT = {
    "a": [1, 2, 3],
    "b": {"a": 1, "b": 2, "c": 3},
    "c": {"num": 12, "bool": True, "str": "abcdef"},
    "d": [12, True, "abcdef"],
}

ARRAY = [
    [1, 2, 3],
    {"a": 1, "b": 2, "c": 3},
    {"num": 12, "bool": True, "str": "abcdef"},
    [12, True, "abcdef"],
]


@pytest.fixture(autouse=True)
def config():
    """Install a fresh default configuration for every test."""
    cfg = DynamikConfig()
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def sample_object():
    """Nested object mixing arrays, objects and primitives."""
    return copy.deepcopy(OBJECT)


@pytest.fixture
def sample_array():
    """Nested array mixing arrays, objects and primitives."""
    return copy.deepcopy(ARRAY)
