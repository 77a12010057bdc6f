from datetime import timedelta

import pytest

from app.domain.feed import service
from app.domain.feed.exceptions import GENERIC_FAILURE_MESSAGE, UNAUTHORIZED_MESSAGE, FeedUnavailable
from app.domain.feed.models import PostRow
from app.domain.feed.policy import DEFAULT_POLICY, score_candidate, time_decay
from app.infra.auth import AuthenticatedUser

VIEWER = "viewer-1"


def _viewer():
    return AuthenticatedUser(id=VIEWER)


async def _feed(repo, now, **kwargs):
    return await service.get_personalized_feed(_viewer(), repo=repo, now=now, **kwargs)


@pytest.mark.asyncio
async def test_anonymous_viewer_gets_unauthorized_without_queries(stub_repo, now):
    result = await service.get_personalized_feed(None, repo=stub_repo, now=now)

    assert result.success is False
    assert result.error == UNAUTHORIZED_MESSAGE
    assert result.posts is None
    assert stub_repo.calls == []


@pytest.mark.asyncio
async def test_empty_store_returns_empty_success(stub_repo, now):
    result = await _feed(stub_repo, now)

    assert result.success is True
    assert result.posts == []
    assert result.has_more is False
    assert "count_likes" not in stub_repo.calls


@pytest.mark.asyncio
async def test_followed_tag_post_outranks_untagged_post(stub_repo, now):
    art = stub_repo.add_tag("art")
    stub_repo.follow_tag(VIEWER, art)
    for days in (30, 31, 32):
        old = stub_repo.add_post("old-artist", hours_ago=days * 24, tags=[art])
        stub_repo.like(VIEWER, old, hours_ago=days)
    tagged = stub_repo.add_post("artist", hours_ago=2, tags=[art])
    plain = stub_repo.add_post("painter", hours_ago=2)
    stub_repo.engage(tagged, likes=10, comments=2, reblogs=1)
    stub_repo.engage(plain, likes=10, comments=2, reblogs=1)

    result = await _feed(stub_repo, now)

    assert result.success is True
    by_id = {post.id: post for post in result.posts}
    assert by_id[tagged].reason == "followed_tag"
    assert by_id[plain].reason == "popular"
    assert by_id[tagged].score == pytest.approx(640 * time_decay(2))
    assert by_id[plain].score == pytest.approx(80 * time_decay(2))
    assert result.posts[0].id == tagged
    assert by_id[tagged].tags[0].name == "art"
    assert by_id[tagged].like_count == 10
    assert by_id[tagged].created_at == "2h"


@pytest.mark.asyncio
async def test_already_liked_post_scores_three_tenths(stub_repo, now):
    post_id = stub_repo.add_post("author-2", hours_ago=3)
    stub_repo.like("someone-else", post_id)
    baseline = (await _feed(stub_repo, now)).posts[0]

    stub_repo.likes.clear()
    stub_repo.like(VIEWER, post_id)
    seen = (await _feed(stub_repo, now)).posts[0]

    assert seen.has_liked is True
    assert baseline.has_liked is False
    assert seen.score == pytest.approx(baseline.score * 0.3)


@pytest.mark.asyncio
async def test_fewer_candidates_than_limit_has_no_more(stub_repo, now):
    for index in range(3):
        stub_repo.add_post(f"author-{index}", hours_ago=index + 1)

    result = await _feed(stub_repo, now, limit=5)

    assert len(result.posts) == 3
    assert result.has_more is False


@pytest.mark.asyncio
async def test_own_and_unpublished_posts_never_appear(stub_repo, now):
    art = stub_repo.add_tag("art")
    stub_repo.follow_tag(VIEWER, art)
    stub_repo.follow_user(VIEWER, "friend")
    mine = stub_repo.add_post(VIEWER, tags=[art])
    draft = stub_repo.add_post("friend", tags=[art], status="draft")
    visible = stub_repo.add_post("friend", tags=[art])

    result = await _feed(stub_repo, now)

    ids = [post.id for post in result.posts]
    assert ids == [visible]
    assert mine not in ids and draft not in ids
    assert result.posts[0].is_own is False


@pytest.mark.asyncio
async def test_sensitive_posts_follow_viewer_preference(stub_repo, now):
    sensitive = stub_repo.add_post("author-2", is_sensitive=True)
    safe = stub_repo.add_post("author-3")

    hidden = await _feed(stub_repo, now)
    stub_repo.show_sensitive[VIEWER] = True
    shown = await _feed(stub_repo, now)

    assert [post.id for post in hidden.posts] == [safe]
    assert {post.id for post in shown.posts} == {sensitive, safe}


@pytest.mark.asyncio
async def test_followed_author_gets_followed_user_reason(stub_repo, now):
    stub_repo.follow_user(VIEWER, "friend")
    for _ in range(3):
        stub_repo.follow_user("fan", "friend")
    post_id = stub_repo.add_post("friend", hours_ago=30)

    [post] = (await _feed(stub_repo, now)).posts

    assert post.id == post_id
    assert post.reason == "followed_user"
    # 1 * decay * 1.0 * 2.0 * 1.0 * (2 - 4/20) * 1.5
    assert post.score == pytest.approx(time_decay(30) * 2.0 * 1.8 * 1.5)


@pytest.mark.asyncio
async def test_pages_do_not_overlap(stub_repo, now):
    tag = stub_repo.add_tag("daily")
    stub_repo.follow_tag(VIEWER, tag)
    for index in range(50):
        stub_repo.add_post(f"author-{index % 25}", hours_ago=1 + index * 3, tags=[tag])

    first = await _feed(stub_repo, now, limit=20, offset=0)
    second = await _feed(stub_repo, now, limit=20, offset=20)
    last = await _feed(stub_repo, now, limit=20, offset=40)
    whole = await _feed(stub_repo, now, limit=50, offset=0)

    paged = [post.id for post in first.posts + second.posts + last.posts]
    assert paged == [post.id for post in whole.posts]
    assert len(set(paged)) == 50
    assert first.has_more is True
    assert second.has_more is True
    assert last.has_more is False


@pytest.mark.asyncio
async def test_no_author_has_more_than_two_posts_on_a_page(stub_repo, now):
    for index in range(6):
        stub_repo.add_post("prolific", hours_ago=index + 1)
    stub_repo.add_post("quiet", hours_ago=40)

    result = await _feed(stub_repo, now)

    authors = [post.author_id for post in result.posts]
    assert authors.count("prolific") == 2
    assert "quiet" in authors


@pytest.mark.asyncio
@pytest.mark.parametrize("failing", ["list_followed_tag_ids", "list_recent_posts", "count_likes", "count_followers"])
async def test_any_upstream_failure_yields_generic_error(stub_repo, now, failing):
    stub_repo.add_post("author-2")
    stub_repo.fail_on.add(failing)

    result = await _feed(stub_repo, now)

    assert result.success is False
    assert result.error == GENERIC_FAILURE_MESSAGE
    assert result.posts is None
    assert result.has_more is None


@pytest.mark.asyncio
async def test_non_positive_paging_falls_back_to_defaults(stub_repo, now):
    for index in range(25):
        stub_repo.add_post(f"author-{index}", hours_ago=index + 1)

    result = await _feed(stub_repo, now, limit=0, offset=-3)

    assert len(result.posts) == service.DEFAULT_LIMIT
    assert result.has_more is True


@pytest.mark.asyncio
async def test_following_feed_includes_self_and_followed(stub_repo, now):
    stub_repo.follow_user(VIEWER, "friend")
    own = stub_repo.add_post(VIEWER, hours_ago=1)
    for index in range(3):
        stub_repo.add_post("friend", hours_ago=2 + index)
    stub_repo.add_post("stranger", hours_ago=0.5)

    result = await service.get_following_feed(_viewer(), limit=3, repo=stub_repo, now=now)

    assert [post.author_id for post in result.posts] == [VIEWER, "friend", "friend"]
    assert result.posts[0].id == own
    assert result.posts[0].is_own is True
    assert result.has_more is True


@pytest.mark.asyncio
async def test_following_feed_for_anonymous_is_global(stub_repo, now):
    stub_repo.add_post("a", hours_ago=1)
    stub_repo.add_post("b", hours_ago=2)

    result = await service.get_following_feed(None, repo=stub_repo, now=now)

    assert [post.author_id for post in result.posts] == ["a", "b"]
    assert result.has_more is False
    assert all(post.is_own is False for post in result.posts)
    assert "list_followed_user_ids" not in stub_repo.calls


@pytest.mark.asyncio
async def test_following_feed_raises_when_store_fails(stub_repo, now):
    stub_repo.fail_on.add("list_timeline_posts")

    with pytest.raises(FeedUnavailable) as exc_info:
        await service.get_following_feed(_viewer(), repo=stub_repo, now=now)

    assert exc_info.value.stage == "timeline"


@pytest.mark.asyncio
async def test_liked_tag_pulls_in_similar_interest_posts(stub_repo, now):
    music = stub_repo.add_tag("music")
    liked = stub_repo.add_post("old-band", hours_ago=30 * 24, tags=[music])
    stub_repo.like(VIEWER, liked)
    fresh = stub_repo.add_post("musician", hours_ago=3, tags=[music])

    result = await _feed(stub_repo, now)

    by_id = {post.id: post for post in result.posts}
    assert by_id[fresh].reason == "similar_interest"
    # Newest like weighs 1.0, so the tag bonus is 1.1
    assert by_id[fresh].score == pytest.approx(
        score_candidate(
            likes=0,
            comments=0,
            reblogs=0,
            hours_old=3,
            reason="similar_interest",
            tag_relevance=1.0,
            author_followers=0,
            is_from_followed_user=False,
        )
    )
    assert stub_repo.calls.count("list_tag_pairs_for_tags") == 2


@pytest.mark.asyncio
async def test_tagged_source_only_reaches_back_two_weeks(stub_repo, now):
    tag = stub_repo.add_tag("film")
    stub_repo.follow_tag(VIEWER, tag)
    inside = stub_repo.add_post("recent-director", hours_ago=13 * 24, tags=[tag])
    outside = stub_repo.add_post("old-director", hours_ago=15 * 24, tags=[tag])
    # Fill the popular source so neither tagged post arrives through it
    for index in range(DEFAULT_POLICY.popular_post_cap):
        stub_repo.add_post(f"filler-{index}", hours_ago=index + 1)

    result = await _feed(stub_repo, now, limit=50)

    by_id = {post.id: post for post in result.posts}
    assert by_id[inside].reason == "followed_tag"
    assert outside not in by_id
    assert len(result.posts) == DEFAULT_POLICY.popular_post_cap + 1


@pytest.mark.asyncio
async def test_candidate_sources_are_capped(stub_repo, now, monkeypatch):
    tag = stub_repo.add_tag("daily")
    stub_repo.follow_tag(VIEWER, tag)
    for index in range(260):
        stub_repo.add_post(f"creator-{index}", hours_ago=1 + index * 0.5, tags=[tag])
        stub_repo.follow_user(VIEWER, f"creator-{index}")

    sizes = {}

    def record_sizes(name):
        original = getattr(stub_repo, name)

        async def wrapper(*args, **kwargs):
            rows = await original(*args, **kwargs)
            sizes[name] = (len(args[0]) if args else None, len(rows))
            return rows

        monkeypatch.setattr(stub_repo, name, wrapper)

    for name in ("list_tagged_posts", "list_posts_by_authors", "list_recent_posts"):
        record_sizes(name)

    result = await _feed(stub_repo, now)

    assert result.success is True
    assert sizes["list_tagged_posts"] == (200, 200)
    assert sizes["list_posts_by_authors"] == (260, 50)
    assert sizes["list_recent_posts"] == (None, 30)


@pytest.mark.asyncio
async def test_naive_store_timestamps_are_read_as_utc(stub_repo, now):
    created = (now - timedelta(hours=4)).replace(tzinfo=None)
    stub_repo.add_post("author-2", post_id="naive-post", hours_ago=4)
    stub_repo.posts["naive-post"] = PostRow(
        id="naive-post",
        author_id="author-2",
        post_type="text",
        content="hello",
        is_sensitive=False,
        is_pinned=False,
        created_at=created,
        published_at=created,
    )
    aware = stub_repo.add_post("author-3", hours_ago=4)

    result = await _feed(stub_repo, now)

    assert result.success is True
    by_id = {post.id: post for post in result.posts}
    assert by_id["naive-post"].score == pytest.approx(by_id[aware].score)
    assert by_id["naive-post"].created_at == "4h"
    assert by_id["naive-post"].published_at.endswith("+00:00")
