import pytest
from flash_querystream import AlreadyBoundError, Ref, UnboundReferenceError


class TestRef:
    def test_new_ref_is_unbound(self):
        """A fresh Ref holds no value."""
        ref = Ref()
        assert ref.is_bound() is False
        with pytest.raises(UnboundReferenceError, match="reference is not bound"):
            ref.get()

    def test_bind_then_get(self):
        """Binding stores the value for later reads."""
        ref = Ref()
        ref.bind("price")
        assert ref.is_bound() is True
        assert ref.get() == "price"

    def test_bind_none_counts_as_bound(self):
        """None is a legitimate bound value."""
        ref = Ref()
        ref.bind(None)
        assert ref.is_bound() is True
        assert ref.get() is None

    def test_second_bind_fails(self):
        """A Ref is write-once."""
        ref = Ref()
        ref.bind(1)
        with pytest.raises(AlreadyBoundError, match="reference is already bound"):
            ref.bind(2)
        assert ref.get() == 1

    def test_unbind_allows_rebinding(self):
        """unbind() detaches the value so the ref can be bound again."""
        ref = Ref()
        ref.bind(1)
        ref.unbind()
        assert ref.is_bound() is False
        ref.bind(2)
        assert ref.get() == 2

    def test_repr(self):
        ref = Ref()
        assert repr(ref) == "Ref(<unbound>)"
        ref.bind(3)
        assert repr(ref) == "Ref(3)"

    def test_errors_are_runtime_errors(self):
        """Ref errors can be caught as builtin RuntimeError."""
        with pytest.raises(RuntimeError):
            Ref().get()
