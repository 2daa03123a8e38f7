from sqlalchemy.exc import OperationalError

from townsquare.core.config import settings
from townsquare.core.security import create_access_token
from townsquare.modules.notifications.models.notification import Notification
from townsquare.modules.posts.comments.services import comment as comment_service
from townsquare.modules.posts.likes.models.like import Like
from townsquare.modules.posts.models.post import Post
from townsquare.modules.user_management.models.user import User, UserRole

API = settings.API_V1_STR


def test_root_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == f"Welcome to {settings.PROJECT_NAME}"


def test_scenario_follow_like_and_read(client, db, make_user, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")

    response = client.post(f"{API}/posts", json={"content": "hello town"}, headers=auth_headers(alice))
    assert response.status_code == 201
    post_id = response.json()["post"]["id"]
    assert db.query(Notification).count() == 0

    response = client.post(f"{API}/users/follow", json={"userId": alice.id}, headers=auth_headers(bob))
    assert response.status_code == 200
    assert client.get(f"{API}/notifications/unread-count", headers=auth_headers(alice)).json() == {"count": 1}

    response = client.post(f"{API}/posts/{post_id}/like", headers=auth_headers(bob))
    assert response.json() == {"liked": True, "likeCount": 1}

    assert client.get(f"{API}/notifications/unread-count", headers=auth_headers(alice)).json() == {"count": 2}
    notifications = client.get(f"{API}/notifications", headers=auth_headers(alice)).json()["notifications"]
    assert sorted(n["type"] for n in notifications) == ["FOLLOW", "LIKE"]
    assert all(n["sender"]["username"] == "bob" for n in notifications)

    response = client.patch(f"{API}/notifications/mark-all-read", headers=auth_headers(alice))
    assert response.json() == {"message": "Marked 2 notifications as read", "count": 2}
    assert client.get(f"{API}/notifications/unread-count", headers=auth_headers(alice)).json() == {"count": 0}


def test_requests_without_token_are_rejected(client):
    response = client.get(f"{API}/notifications")
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}

    response = client.get(f"{API}/notifications", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid or expired token"}


def test_stream_requires_token(client):
    assert client.get(f"{API}/notifications/stream").status_code == 401
    assert client.get(f"{API}/notifications/stream", params={"token": "garbage"}).status_code == 401


def test_inactive_user_is_forbidden(client, make_user, auth_headers):
    ghost = make_user("ghost", is_active=False)
    assert client.get(f"{API}/users/me", headers=auth_headers(ghost)).status_code == 403


def test_unknown_identity_must_sync_first(client, auth_headers):
    assert client.get(f"{API}/users/me", headers=auth_headers("never-synced")).status_code == 401


def test_auth_sync_creates_then_returns_user(client, db):
    token = create_access_token("provider-uid-1", claims={"email": "carol@example.com", "name": "Carol King"})
    headers = {"Authorization": f"Bearer {token}"}

    response = client.post(f"{API}/auth/sync", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["isNewUser"] is True
    assert body["user"]["id"] == "provider-uid-1"
    assert body["user"]["username"] == "carol"
    assert body["user"]["firstName"] == "Carol"
    assert body["user"]["lastName"] == "King"

    response = client.post(f"{API}/auth/sync", headers=headers)
    assert response.json()["isNewUser"] is False
    assert db.query(User).count() == 1


def test_auth_sync_makes_username_unique(client, make_user):
    make_user("carol", email="carol@other.example")
    token = create_access_token("provider-uid-2", claims={"email": "carol@example.com"})

    response = client.post(f"{API}/auth/sync", headers={"Authorization": f"Bearer {token}"})

    assert response.json()["user"]["username"] == "carol1"


def test_post_validation(client, make_user, auth_headers):
    alice = make_user("alice")

    for content in ["", "   ", "x" * 281]:
        response = client.post(f"{API}/posts", json={"content": content}, headers=auth_headers(alice))
        assert response.status_code == 400

    response = client.post(f"{API}/posts", json={"content": "x" * 280, "category": "QUESTION"}, headers=auth_headers(alice))
    assert response.status_code == 201
    assert response.json()["post"]["category"] == "QUESTION"


def test_posts_page_with_liked_by_me(client, db, make_user, make_post, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    posts = [make_post(alice, content=f"post {i}") for i in range(3)]
    make_post(alice, content="hidden", is_active=False)
    db.add(Like(id="l1", user_id=bob.id, post_id=posts[0].id))
    db.commit()

    body = client.get(f"{API}/posts", params={"page": 0, "limit": 2}, headers=auth_headers(bob)).json()
    assert [p["content"] for p in body["posts"]] == ["post 2", "post 1"]
    assert body["hasMore"] is True
    assert body["posts"][0]["author"]["username"] == "alice"

    body = client.get(f"{API}/posts", params={"page": 1, "limit": 2}, headers=auth_headers(bob)).json()
    assert [p["content"] for p in body["posts"]] == ["post 0"]
    assert body["posts"][0]["likedByMe"] is True
    assert body["hasMore"] is False

    # Anonymous callers see the feed without like state
    body = client.get(f"{API}/posts", params={"page": 1, "limit": 2}).json()
    assert body["posts"][0]["likedByMe"] is False


def test_posts_limit_is_capped(client, make_user, make_post):
    alice = make_user("alice")
    for i in range(52):
        make_post(alice, content=f"post {i}")

    body = client.get(f"{API}/posts", params={"limit": 500}).json()

    assert len(body["posts"]) == 50
    assert body["hasMore"] is True


def test_delete_post_is_author_only(client, db, make_user, make_post, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)

    assert client.delete(f"{API}/posts/{post.id}", headers=auth_headers(bob)).status_code == 403
    assert client.delete(f"{API}/posts/{post.id}", headers=auth_headers(alice)).status_code == 200
    assert client.get(f"{API}/posts").json()["posts"] == []
    assert client.post(f"{API}/posts/{post.id}/like", headers=auth_headers(bob)).status_code == 404


def test_comment_endpoints(client, make_user, make_post, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)

    response = client.post(f"{API}/posts/{post.id}/comments", json={"content": "first!"}, headers=auth_headers(bob))
    assert response.status_code == 201
    comment = response.json()["comment"]
    assert comment["author"]["username"] == "bob"

    assert client.post(f"{API}/posts/missing/comments", json={"content": "hi"}, headers=auth_headers(bob)).status_code == 404
    assert client.post(f"{API}/posts/{post.id}/comments", json={"content": " "}, headers=auth_headers(bob)).status_code == 400

    comments = client.get(f"{API}/posts/{post.id}/comments").json()["comments"]
    assert [c["content"] for c in comments] == ["first!"]

    assert client.delete(f"{API}/posts/{post.id}/comments/{comment['id']}", headers=auth_headers(alice)).status_code == 403
    response = client.delete(f"{API}/posts/{post.id}/comments/{comment['id']}", headers=auth_headers(bob))
    assert response.json() == {"message": "Comment deleted successfully", "commentCount": 0}


def test_follow_rules(client, db, make_user, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    ghost = make_user("ghost", is_active=False)
    headers = auth_headers(bob)

    assert client.post(f"{API}/users/follow", json={}, headers=headers).status_code == 400
    assert client.post(f"{API}/users/follow", json={"userId": bob.id}, headers=headers).status_code == 400
    assert client.post(f"{API}/users/follow", json={"userId": "missing"}, headers=headers).status_code == 404
    assert client.post(f"{API}/users/follow", json={"userId": ghost.id}, headers=headers).status_code == 404

    assert client.post(f"{API}/users/follow", json={"userId": alice.id}, headers=headers).status_code == 200
    response = client.post(f"{API}/users/follow", json={"userId": alice.id}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"detail": "Already following this user"}
    assert db.query(Notification).count() == 1

    assert client.post(f"{API}/users/unfollow", json={"userId": alice.id}, headers=headers).status_code == 200
    response = client.post(f"{API}/users/unfollow", json={"userId": alice.id}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"detail": "Not following this user"}
    assert client.post(f"{API}/users/unfollow", json={}, headers=headers).status_code == 400
    assert db.query(Notification).count() == 1


def test_discover_and_user_list(client, make_user, make_post, auth_headers):
    alice = make_user("alice", is_verified=True)
    bob = make_user("bob")
    carol = make_user("carol", first_name="Caroline")
    make_post(alice)
    client.post(f"{API}/users/follow", json={"userId": alice.id}, headers=auth_headers(bob))

    body = client.get(f"{API}/users/discover", headers=auth_headers(bob)).json()
    assert body["users"][0]["username"] == "alice"
    assert body["users"][0]["followerCount"] == 1
    assert body["users"][0]["postCount"] == 1
    assert bob.id not in [u["id"] for u in body["users"]]
    assert body["followingIds"] == [alice.id]

    body = client.get(f"{API}/users", headers=auth_headers(bob)).json()
    assert {u["username"] for u in body["users"]} == {"alice", "carol"}
    assert next(u for u in body["users"] if u["id"] == alice.id)["isFollowing"] is True
    assert body["hasMore"] is False

    body = client.get(f"{API}/users", params={"q": "CAROL"}).json()
    assert [u["id"] for u in body["users"]] == [carol.id]


def test_update_profile(client, make_user, auth_headers):
    alice = make_user("alice")
    make_user("bob")

    response = client.patch(f"{API}/users/me", json={"bio": "hi", "location": "Lisbon"}, headers=auth_headers(alice))
    assert response.status_code == 200
    assert response.json()["user"]["bio"] == "hi"

    response = client.patch(f"{API}/users/me", json={"username": "bob"}, headers=auth_headers(alice))
    assert response.status_code == 400
    response = client.patch(f"{API}/users/me", json={"username": "  "}, headers=auth_headers(alice))
    assert response.status_code == 400


def test_mark_read_endpoint(client, db, make_user, make_post, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)
    client.post(f"{API}/posts/{post.id}/like", headers=auth_headers(bob))
    notification_id = db.query(Notification.id).scalar()

    assert client.patch(f"{API}/notifications/{notification_id}/read", headers=auth_headers(bob)).status_code == 404
    response = client.patch(f"{API}/notifications/{notification_id}/read", headers=auth_headers(alice))
    assert response.json() == {"message": "Notification marked as read"}
    assert client.get(f"{API}/notifications/unread-count", headers=auth_headers(alice)).json() == {"count": 0}


def test_admin_routes_require_admin(client, make_user, auth_headers):
    bob = make_user("bob")
    assert client.get(f"{API}/admin/users", headers=auth_headers(bob)).status_code == 403


def test_admin_user_management(client, db, make_user, make_post, auth_headers):
    admin = make_user("root", role=UserRole.ADMIN)
    alice = make_user("alice")
    bob = make_user("bob")
    headers = auth_headers(admin)

    alice_post = make_post(alice)
    bob_post = make_post(bob)
    client.post(f"{API}/posts/{alice_post.id}/like", headers=auth_headers(bob))
    client.post(f"{API}/posts/{bob_post.id}/like", headers=auth_headers(alice))
    client.post(f"{API}/posts/{alice_post.id}/comments", json={"content": "hi"}, headers=auth_headers(bob))
    client.post(f"{API}/users/follow", json={"userId": alice.id}, headers=auth_headers(bob))

    users = client.get(f"{API}/admin/users", headers=headers).json()["users"]
    assert next(u for u in users if u["id"] == alice.id)["followerCount"] == 1

    response = client.patch(f"{API}/admin/users/{alice.id}", json={"isVerified": True, "role": "ADMIN"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["user"]["isVerified"] is True
    assert response.json()["user"]["role"] == "ADMIN"

    assert client.delete(f"{API}/admin/users/{admin.id}", headers=headers).status_code == 400

    posts = client.get(f"{API}/admin/users/{bob.id}/posts", headers=headers).json()["posts"]
    assert [p["id"] for p in posts] == [bob_post.id]

    bob_id, bob_post_id, alice_post_id = bob.id, bob_post.id, alice_post.id
    assert client.delete(f"{API}/admin/users/{bob_id}", headers=headers).status_code == 200
    db.expunge_all()
    assert db.query(User).filter(User.id == bob_id).count() == 0
    assert db.query(Post).filter(Post.id == bob_post_id).count() == 0
    refreshed = db.query(Post).filter(Post.id == alice_post_id).one()
    assert refreshed.like_count == 0
    assert refreshed.comment_count == 0
    assert db.query(Notification).filter(Notification.sender_id == bob_id).count() == 0


def test_admin_hard_deletes_post(client, db, make_user, make_post, auth_headers):
    admin = make_user("root", role=UserRole.ADMIN)
    alice = make_user("alice")
    bob = make_user("bob")
    post = make_post(alice)
    client.post(f"{API}/posts/{post.id}/like", headers=auth_headers(bob))

    assert client.delete(f"{API}/admin/posts/{post.id}", headers=auth_headers(admin)).status_code == 200
    assert client.delete(f"{API}/admin/posts/{post.id}", headers=auth_headers(admin)).status_code == 404
    db.expire_all()
    assert db.query(Like).count() == 0
    assert db.query(Notification).count() == 0


def test_storage_failure_is_a_generic_500(client, make_user, make_post, auth_headers, monkeypatch):
    post = make_post(make_user("alice"))
    bob = make_user("bob")

    def failing_increment(*args):
        raise OperationalError("UPDATE posts", {}, Exception("connection reset"))

    monkeypatch.setattr(comment_service, "increment_comment_count", failing_increment)

    response = client.post(f"{API}/posts/{post.id}/comments", json={"content": "hi"}, headers=auth_headers(bob))
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
