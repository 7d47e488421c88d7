import pytest

from dnmeta.exceptions import MalformedContainerError
from dnmeta.rewrite_plan import CopySegment, EmitSegment, RewritePlan


SOURCE = b'0123456789'


def test_copy_and_emit():
    plan = RewritePlan(len(SOURCE))
    plan.copy(0, 3)
    plan.copy(3, 2)
    plan.emit(b'ab')
    plan.emit(b'c')
    plan.copy_rest(5)

    # adjacent segments of the same kind are merged
    assert plan.segments == [CopySegment(0, 5), EmitSegment(b'abc'), CopySegment(5, 5)]
    assert plan.total_length == 13
    assert plan.emitted_length == 3
    assert plan.render(SOURCE) == b'01234abc56789'


def test_patched_keeps_length():
    plan = RewritePlan.patched(SOURCE, [(6, b'XY'), (1, b'A')])

    assert plan.render(SOURCE) == b'0A2345XY89'


def test_patched_rejects_overlap_and_overrun():
    with pytest.raises(MalformedContainerError):
        RewritePlan.patched(SOURCE, [(2, b'abc'), (3, b'x')])
    with pytest.raises(MalformedContainerError):
        RewritePlan.patched(SOURCE, [(9, b'xy')])


def test_copy_outside_source():
    plan = RewritePlan(len(SOURCE))

    with pytest.raises(MalformedContainerError):
        plan.copy(8, 5)


def test_render_against_other_buffer():
    plan = RewritePlan(len(SOURCE))
    plan.copy_rest(0)

    with pytest.raises(MalformedContainerError):
        plan.render(SOURCE + b'!')
