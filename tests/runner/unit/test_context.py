"""
Unit tests for MissionContext
"""

from flightplan.runner.context import Contributor, MissionContext

CREATOR = Contributor(id="user-1", name="Ada", email="ada@example.com")


def test_creator_is_never_a_co_author():
    """Test the creator is skipped"""
    context = MissionContext("mission-1", CREATOR)
    context.add_contributor(Contributor(id="user-1", name="Ada again", email="other@example.com"))

    assert context.contributors == []
    assert context.commit_message("Add cart") == "Add cart"


def test_co_author_trailers():
    """Test trailers are emitted for contributors with an email"""
    context = MissionContext("mission-1", CREATOR)
    context.add_contributor(Contributor(id="user-2", name="Grace", email="grace@example.com"))
    context.add_contributor(Contributor(id="user-3", name="Linus"))
    context.add_contributor(Contributor(id="user-2", name="Grace", email="grace@example.com"))

    assert len(context.contributors) == 2
    assert context.co_author_trailers() == ["Co-authored-by: Grace <grace@example.com>"]
    assert context.commit_message("Add cart") == "Add cart\n\nCo-authored-by: Grace <grace@example.com>"


def test_clear_after_commit():
    """Test contributors reset explicitly"""
    context = MissionContext("mission-1", CREATOR)
    context.add_contributor(Contributor(id="user-2", name="Grace", email="grace@example.com"))
    context.clear_contributors()

    assert context.contributors == []


def test_record_pull_request():
    context = MissionContext("mission-1", CREATOR)
    assert context.pull_request is None

    info = context.record_pull_request(42, "https://github.com/acme/shop/pull/42")

    assert context.pull_request == info
    assert info.number == 42
