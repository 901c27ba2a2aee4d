"""Unit tests for parser options and batch input handling."""

import pytest

from pkgbuild_parser.process import ParserOptions, RecipeParser, SchedulingStrategy


class TestParserOptions:
    """Test option coercion and validation."""

    def test_strategy_from_string(self):
        """Strategies may be given by value."""
        assert ParserOptions(strategy="select").strategy is SchedulingStrategy.SELECT

    def test_unknown_strategy(self):
        """Unknown strategies are rejected."""
        with pytest.raises(ValueError):
            ParserOptions(strategy="threads")

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"deadline": 0}, {"deadline": -1.5}])
    def test_non_positive_limits(self, kwargs):
        """chunk_size and deadline must be positive."""
        with pytest.raises(ValueError):
            ParserOptions(**kwargs)

    def test_env_merged_over_environment(self, monkeypatch):
        """Extra variables are layered over os.environ."""
        monkeypatch.setenv("PKGBUILD_PARSER_BASE", "kept")

        env = ParserOptions(env={"CARCH": "aarch64"}).build_env()

        assert env["CARCH"] == "aarch64"
        assert env["PKGBUILD_PARSER_BASE"] == "kept"

    def test_no_env_inherits(self):
        """Without extra variables the child inherits the environment."""
        assert ParserOptions().build_env() is None


class TestBatchInput:
    """Test path handling before any process is started."""

    @pytest.mark.anyio
    async def test_empty_batch(self):
        """An empty batch returns immediately without an evaluator."""
        options = ParserOptions(interpreter="/nonexistent")
        parser = RecipeParser("/nonexistent/evaluator.bash", options)

        assert await parser.parse_batch([]) == []

    @pytest.mark.anyio
    async def test_newline_in_path(self):
        """Paths with newlines would break the one-path-per-line input."""
        parser = RecipeParser("/nonexistent/evaluator.bash")

        with pytest.raises(ValueError, match="newline"):
            await parser.parse_batch(["good/PKGBUILD", "bad\n/PKGBUILD"])
