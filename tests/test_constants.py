"""Tests for annotlearn.constants module."""


class TestConstants:
    """Test application constants."""

    def test_timing_defaults(self):
        """Test worker timing defaults are ordered sensibly."""
        from annotlearn.constants import LONG_PAUSE, PAUSE_EVERY_TARGETS, SHORT_PAUSE

        assert 0 < SHORT_PAUSE < LONG_PAUSE
        assert PAUSE_EVERY_TARGETS >= 1

    def test_roc_tolerances(self):
        """Test ROC tolerances are small positive values."""
        from annotlearn.constants import (
            ROC_POINT_EPSILON,
            THRESHOLD_EPSILON,
            THRESHOLD_SENTINEL_FRACTION,
        )

        assert THRESHOLD_EPSILON == 1e-6
        assert ROC_POINT_EPSILON == 1e-5
        assert THRESHOLD_SENTINEL_FRACTION == 0.01

    def test_degenerate_probabilities(self):
        """Test the zero-width band probabilities straddle 0.5."""
        from annotlearn.constants import (
            DEGENERATE_HIGH_PROBABILITY,
            DEGENERATE_LOW_PROBABILITY,
        )

        assert DEGENERATE_LOW_PROBABILITY < 0.5 < DEGENERATE_HIGH_PROBABILITY

    def test_block_blacklist_lowercase(self):
        """Test blacklisted blocks are stored lowercased."""
        from annotlearn.constants import BLOCK_BLACKLIST

        assert "(dt the)" in BLOCK_BLACKLIST
        assert all(block == block.lower() for block in BLOCK_BLACKLIST)

    def test_markers(self):
        """Test text markers."""
        from annotlearn.constants import CUTOFF_MARKER, INITIAL_WATERMARK, TARGET_KEY_SEPARATOR

        assert CUTOFF_MARKER == "####"
        assert TARGET_KEY_SEPARATOR == "::"
        assert INITIAL_WATERMARK == 1


class TestExitCode:
    """Test ExitCode enum."""

    def test_values(self):
        """Test exit code values."""
        from annotlearn.constants import ExitCode

        assert ExitCode.SUCCESS == 0
        assert ExitCode.GENERAL_ERROR == 1
        assert ExitCode.INVALID_INPUT == 3
        assert ExitCode.STORE_ERROR == 4
        assert ExitCode.KEYBOARD_INTERRUPT == 130
