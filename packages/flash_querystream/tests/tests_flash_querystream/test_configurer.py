import pytest
from flash_querystream import InvalidArgumentError
from flash_querystream.configurer import compose, transform


def _base(builder, query):
    query.append("base")
    return "selection"


class TestCompose:
    def test_runs_previous_configuration_first(self):
        """The oldest configuration runs first and the selection passes through."""
        seen = []

        configurer = compose(
            compose(_base, lambda b, q, s: q.append(("first", s))),
            lambda b, q, s: q.append(("second", s)),
        )
        result = configurer(None, seen)

        assert result == "selection"
        assert seen == ["base", ("first", "selection"), ("second", "selection")]

    def test_runs_again_on_every_invocation(self):
        """Configurers are not memoised."""
        calls = []
        configurer = compose(_base, lambda b, q, s: calls.append(s))

        configurer(None, [])
        configurer(None, [])

        assert calls == ["selection", "selection"]

    def test_rejects_null_arguments(self):
        with pytest.raises(InvalidArgumentError, match="null configurer"):
            compose(None, lambda b, q, s: None)
        with pytest.raises(InvalidArgumentError, match="null modifier"):
            compose(_base, None)


class TestTransform:
    def test_replaces_selection(self):
        """transform() returns whatever the new step computes."""
        configurer = transform(_base, lambda b, q, s: s.upper())
        assert configurer(None, []) == "SELECTION"

    def test_chains_with_compose(self):
        seen = []
        configurer = compose(
            transform(_base, lambda b, q, s: len(s)),
            lambda b, q, s: seen.append(s),
        )
        assert configurer(None, []) == len("selection")
        assert seen == [len("selection")]

    def test_rejects_null_arguments(self):
        with pytest.raises(InvalidArgumentError, match="null configurer"):
            transform(None, lambda b, q, s: s)
        with pytest.raises(InvalidArgumentError, match="null transformer"):
            transform(_base, None)
