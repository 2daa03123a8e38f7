import pytest

from townsquare.core.exceptions import NotFoundError
from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.follows.services.follow import follow_user
from townsquare.modules.notifications.models.notification import Notification, NotificationType
from townsquare.modules.notifications.realtime.change_feed import INSERT, UPDATE
from townsquare.modules.notifications.services import notification_events
from townsquare.modules.notifications.services.notification import (
    count_unread, get_user_notifications, mark_all_read, mark_read
)
from townsquare.modules.notifications.services.notification_events import (
    NotificationEvent, dispatch_notification_event, message_for
)
from townsquare.modules.posts.schemas.post import PostCreate
from townsquare.modules.posts.services.post import create_post


def _follow(db, follower, target):
    db.add(Follow(id=f"{follower.id}->{target.id}", follower_id=follower.id, following_id=target.id))
    db.commit()


def test_messages_come_from_one_mapping():
    assert message_for(NotificationType.FOLLOW) == "started following you"
    assert message_for(NotificationType.LIKE) == "liked your post"
    assert message_for(NotificationType.COMMENT) == "commented on your post"
    assert message_for(NotificationType.POST) == "shared a new post"


def test_post_fans_out_to_every_follower(db, make_user):
    author = make_user("alice")
    followers = [make_user(f"follower{i}") for i in range(5)]
    for follower in followers:
        _follow(db, follower, author)
    make_user("bystander")

    post = create_post(db, PostCreate(content="big news"), author)

    rows = db.query(Notification).filter(Notification.type == NotificationType.POST).all()
    assert len(rows) == 5
    assert {n.recipient_id for n in rows} == {f.id for f in followers}
    assert all(n.sender_id == author.id and n.post_id == post.id for n in rows)
    assert all(n.message == "shared a new post" for n in rows)


def test_post_without_followers_creates_nothing(db, make_user):
    author = make_user("alice")

    create_post(db, PostCreate(content="anyone?"), author)

    assert db.query(Notification).count() == 0


def test_author_in_recipient_list_is_skipped(db, make_user, make_post):
    author = make_user("alice")
    bob = make_user("bob")
    post = make_post(author)

    created = dispatch_notification_event(
        db, NotificationEvent(NotificationType.POST, author.id, post.id, [author.id, bob.id, bob.id])
    )

    assert created == 1
    assert db.query(Notification).one().recipient_id == bob.id


def test_follow_notification_has_no_post(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")

    follow_user(db, bob.id, alice.id)

    notification = db.query(Notification).one()
    assert notification.type == NotificationType.FOLLOW
    assert notification.recipient_id == alice.id
    assert notification.sender_id == bob.id
    assert notification.post_id is None


def test_like_on_missing_post_creates_nothing(db, make_user):
    bob = make_user("bob")

    assert dispatch_notification_event(db, NotificationEvent(NotificationType.LIKE, bob.id, "missing")) == 0
    assert db.query(Notification).count() == 0


def test_writer_failure_is_swallowed(db, make_user, monkeypatch):
    alice = make_user("alice")
    bob = make_user("bob")

    def broken(*args):
        raise RuntimeError("database went away")

    monkeypatch.setattr(notification_events, "_resolve_recipients", broken)

    assert notification_events.create_follow_notification(db, bob.id, alice.id) == 0
    # Session is still usable afterwards
    assert db.query(Notification).count() == 0


def test_unread_count_and_mark_read(db, make_user, make_post):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)
    notification_events.create_like_notification(db, post.id, bob.id)
    notification_events.create_comment_notification(db, post.id, bob.id)

    assert count_unread(db, alice.id) == 2

    first = get_user_notifications(db, alice.id)[0]
    mark_read(db, first.id, alice.id)
    assert count_unread(db, alice.id) == 1

    # Already read is a no-op
    mark_read(db, first.id, alice.id)
    assert count_unread(db, alice.id) == 1


def test_mark_read_of_someone_elses_notification(db, make_user, make_post):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)
    notification_events.create_like_notification(db, post.id, bob.id)
    notification_id = db.query(Notification.id).scalar()

    with pytest.raises(NotFoundError):
        mark_read(db, notification_id, bob.id)
    with pytest.raises(NotFoundError):
        mark_read(db, "missing", alice.id)
    assert count_unread(db, alice.id) == 1


def test_mark_all_read_is_idempotent(db, make_user, make_post):
    alice = make_user("alice")
    post = make_post(alice)
    for i in range(3):
        notification_events.create_like_notification(db, post.id, make_user(f"fan{i}").id)

    assert mark_all_read(db, alice.id) == 3
    assert count_unread(db, alice.id) == 0
    assert mark_all_read(db, alice.id) == 0
    assert count_unread(db, alice.id) == 0


def test_notifications_include_sender_and_post(db, make_user, make_post):
    alice = make_user("alice")
    bob = make_user("bob", first_name="Bob")
    post = make_post(alice, content="sunset")
    notification_events.create_like_notification(db, post.id, bob.id)

    [notification] = get_user_notifications(db, alice.id)

    assert notification.sender.username == "bob"
    assert notification.sender.first_name == "Bob"
    assert notification.post.content == "sunset"


def test_capture_publishes_only_after_commit(recording_feed, db, make_user, make_post):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)

    notification_events.create_like_notification(db, post.id, bob.id)

    assert len(recording_feed.events) == 1
    change = recording_feed.events[0]
    assert change.op == INSERT
    assert change.table == "notifications"
    assert change.new["recipient_id"] == alice.id
    assert change.new["type"] == "LIKE"
    assert change.new["is_read"] is False


def test_capture_discards_on_rollback(recording_feed, db, make_user, make_post):
    alice = make_user("alice")
    bob = make_user("bob")
    make_post(alice)

    db.add(Notification(id="n1", recipient_id=alice.id, sender_id=bob.id, type=NotificationType.FOLLOW, message="x"))
    db.flush()
    db.rollback()

    assert recording_feed.events == []


def test_capture_reports_read_flips(recording_feed, db, make_user, make_post):
    alice = make_user("alice")
    post = make_post(alice)
    for i in range(2):
        notification_events.create_like_notification(db, post.id, make_user(f"fan{i}").id)
    recording_feed.events.clear()

    first_id = db.query(Notification.id).limit(1).scalar()
    mark_read(db, first_id, alice.id)
    mark_all_read(db, alice.id)

    assert [c.op for c in recording_feed.events] == [UPDATE, UPDATE]
    for change in recording_feed.events:
        assert change.new["is_read"] is True
        assert change.old["is_read"] is False
        assert change.new["recipient_id"] == alice.id
