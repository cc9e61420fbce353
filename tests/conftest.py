"""Shared fixtures: an isolated AWS directory under tmp_path."""

import pytest

from aws_doctor.aws import AwsPaths


@pytest.fixture
def aws_paths(tmp_path):
    """AwsPaths rooted in a temporary home; nothing exists yet."""
    return AwsPaths.from_environment(home=tmp_path, environ={})


@pytest.fixture
def aws_home(aws_paths):
    """AwsPaths with ~/.aws created."""
    aws_paths.aws_dir.mkdir(parents=True)
    return aws_paths
