"""Unit tests for PipelineConfig."""
from datetime import timedelta

import pytest

from pipeline.config import PipelineConfig, split_feed_urls


def test_defaults():
    config = PipelineConfig.from_env({})

    assert config.feed_urls == []
    assert config.timezone == 'America/Vancouver'
    assert config.city == 'Vancouver, BC'
    assert config.table_name == 'community-events'
    assert config.timeout_seconds == 30
    assert config.past_grace == timedelta(hours=24)
    assert config.log_level == 'INFO'


def test_values_from_environment():
    config = PipelineConfig.from_env({
        'ICS_FEED_URLS': 'https://a.example/a.ics,https://b.example/b.ics',
        'CITY_TZ': 'America/Toronto',
        'CITY_NAME': 'Toronto, ON',
        'PAST_GRACE_HOURS': '6',
        'TABLE_NAME': 'events-prod',
        'TIMEOUT_SECONDS': '10',
        'LOG_LEVEL': 'DEBUG',
    })

    assert config.feed_urls == ['https://a.example/a.ics', 'https://b.example/b.ics']
    assert config.timezone == 'America/Toronto'
    assert config.city == 'Toronto, ON'
    assert config.past_grace == timedelta(hours=6)
    assert config.table_name == 'events-prod'
    assert config.timeout_seconds == 10
    assert config.log_level == 'DEBUG'


def test_split_feed_urls_drops_blanks():
    assert split_feed_urls(' https://a.example/a.ics , ,https://b.example/b.ics,') == [
        'https://a.example/a.ics', 'https://b.example/b.ics'
    ]
    assert split_feed_urls('') == []


@pytest.mark.parametrize('env', [
    {'CITY_TZ': 'Not/A_Zone'},
    {'PAST_GRACE_HOURS': 'soon'},
    {'PAST_GRACE_HOURS': '-1'},
    {'TIMEOUT_SECONDS': '0'},
])
def test_invalid_values_raise(env):
    with pytest.raises(ValueError):
        PipelineConfig.from_env(env)
