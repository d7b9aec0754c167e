"""Tests for AttachConfig."""

import os
from pathlib import Path
from unittest.mock import patch

from autoattach.config import DEFAULT_IMAGE_TIMEOUT, DEFAULT_TOTAL_TIMEOUT, AttachConfig


class TestAttachConfig:
    def test_defaults(self):
        config = AttachConfig()
        assert config.image_timeout == 4.0
        assert config.total_timeout == 20.0
        assert config.retry_failed is False
        assert config.apply_size_limits is False
        assert config.allow_animated_gif is True
        assert config.default_extension == "jpg"
        assert config.max_redirects == 2

    def test_non_positive_timeouts_fall_back(self):
        config = AttachConfig(image_timeout=0, total_timeout=-1)
        assert config.effective_image_timeout == DEFAULT_IMAGE_TIMEOUT
        assert config.effective_total_timeout == DEFAULT_TOTAL_TIMEOUT

    def test_from_env(self):
        env = {
            "AUTOATTACH_EXCEPT_DOMAINS": "mysite.com,*.cdn.net",
            "AUTOATTACH_SITE_URL": "https://mysite.com/",
            "AUTOATTACH_IMAGE_TIMEOUT": "2.5",
            "AUTOATTACH_TOTAL_TIMEOUT": "oops",
            "AUTOATTACH_RETRY_DOWNLOAD": "Y",
            "AUTOATTACH_APPLY_MODULE_LIMIT": "yes",
            "AUTOATTACH_ALLOW_ANIMATED_GIF": "N",
            "AUTOATTACH_TEMP_DIR": "/tmp/autoattach-test",
        }
        with patch.dict(os.environ, env, clear=False):
            config = AttachConfig.from_env()
        assert config.except_domains == "mysite.com,*.cdn.net"
        assert config.site_url == "https://mysite.com/"
        assert config.image_timeout == 2.5
        assert config.total_timeout == DEFAULT_TOTAL_TIMEOUT
        assert config.retry_failed is True
        assert config.apply_size_limits is True
        assert config.allow_animated_gif is False
        assert config.temp_dir == Path("/tmp/autoattach-test")

    def test_from_env_without_variables(self):
        with patch.dict(os.environ, {}, clear=True):
            config = AttachConfig.from_env()
        assert config == AttachConfig()
