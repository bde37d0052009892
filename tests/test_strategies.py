"""Tests for per-platform ingestion strategies."""

import base64
import json
from datetime import UTC, datetime

import httpx
import pytest

from jovie_ingest.core.enums import JobType
from jovie_ingest.core.errors import ExtractionErrorCode, ExtractionFailed
from jovie_ingest.ingestion.fetcher import Fetcher, RawDocument
from jovie_ingest.ingestion.strategies import (
    BeaconsStrategy,
    ExtractedLink,
    InstagramStrategy,
    LayloStrategy,
    LinkCandidate,
    LinktreeStrategy,
    LyricsStrategy,
    SpotifyStrategy,
    YouTubeStrategy,
    get_strategy,
    get_strategy_info,
    list_strategies,
    strategy_for_platform,
)
from jovie_ingest.ingestion.strategies.html import (
    clean_display_name,
    extract_json_assignment,
    find_urls_in_text,
    is_default_avatar,
    iter_anchors,
    parse_html,
    unwrap_redirect,
)


def _doc(url: str, html: str) -> RawDocument:
    return RawDocument(
        url=url,
        final_url=url,
        status_code=200,
        content_type="text/html",
        text=html,
        content_hash="0" * 64,
        fetched_at=datetime.now(UTC),
    )


def _identities(result) -> set[str]:
    return {link.canonical_identity for link in result.links}


def _next_data(data: dict) -> str:
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'


class TestLinktreeStrategy:
    """Tests for LinktreeStrategy."""

    def test_extracts_next_data_links(self) -> None:
        """Test links, socials and account metadata from __NEXT_DATA__."""
        data = {
            "props": {
                "pageProps": {
                    "account": {
                        "pageTitle": "Test Artist",
                        "profilePictureUrl": "https://ugc.production.linktr.ee/avatar.jpg",
                    },
                    "links": [
                        {"url": "https://instagram.com/testartist", "title": "Instagram"},
                        {"url": "https://open.spotify.com/artist/abc123", "title": "Spotify"},
                        {"url": "badurl.notadomain", "title": "Broken"},
                    ],
                    "socialLinks": [{"url": "https://www.instagram.com/TestArtist/"}],
                }
            }
        }
        html = (
            "<html><head><title>Test Artist | Linktree</title></head><body>"
            + _next_data(data)
            + '<a href="https://linktr.ee/someoneelse">Other</a>'
            + '<a href="https://bit.ly/abc">Short</a>'
            + "</body></html>"
        )

        result = LinktreeStrategy().extract(_doc("https://linktr.ee/testartist", html))

        assert _identities(result) == {"instagram:testartist", "spotify:abc123"}
        instagram = next(link for link in result.links if link.platform_id == "instagram")
        assert instagram.confidence == 0.95
        assert instagram.signals == ["next_data", "next_data_social"]
        assert instagram.display_text == "Instagram"
        assert instagram.source_platform == "linktree"
        assert result.display_name == "Test Artist"
        assert result.avatar_url == "https://ugc.production.linktr.ee/avatar.jpg"
        assert result.dropped == 1

    def test_anchor_fallback_and_title(self) -> None:
        """Test pages without Next.js data."""
        html = (
            "<html><head><title>Test Artist | Linktree</title></head><body>"
            '<a href="https://twitter.com/testartist">Twitter</a>'
            "</body></html>"
        )

        result = LinktreeStrategy().extract(_doc("https://linktr.ee/testartist", html))

        assert _identities(result) == {"twitter:testartist"}
        assert result.links[0].signals == ["anchor"]
        assert result.display_name == "Test Artist"

    def test_garbage_document_returns_empty_result(self) -> None:
        """Test that malformed documents never raise."""
        result = LinktreeStrategy().extract(_doc("https://linktr.ee/testartist", "<<<not html"))
        assert result.links == []
        assert result.source_platform == "linktree"

    @pytest.mark.asyncio
    async def test_fetch_document_rejects_other_platforms(self) -> None:
        """Test that a strategy refuses URLs of other platforms."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not fetch")

        strategy = LinktreeStrategy(fetcher=Fetcher(transport=httpx.MockTransport(handler)))
        with pytest.raises(ExtractionFailed) as exc_info:
            await strategy.fetch_document("https://instagram.com/testartist")
        assert exc_info.value.code == ExtractionErrorCode.INVALID_URL

    @pytest.mark.asyncio
    async def test_fetch_document_uses_canonical_url(self) -> None:
        """Test that the canonical profile URL is fetched."""
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, html="<p>ok</p>")

        strategy = LinktreeStrategy(fetcher=Fetcher(transport=httpx.MockTransport(handler)))
        doc = await strategy.fetch_document("https://www.linktr.ee/TestArtist/?utm_source=ig")
        assert requested == ["https://linktr.ee/testartist"]
        assert doc.status_code == 200

    def test_malformed_next_data_link_is_dropped(self) -> None:
        """Test that one unparseable link does not fail the extraction."""
        data = {
            "props": {
                "pageProps": {
                    "links": [
                        {"url": "https://instagram.com/testartist", "title": "Instagram"},
                        {"url": "//[broken", "title": "Broken"},
                    ]
                }
            }
        }
        html = "<html><body>" + _next_data(data) + "</body></html>"

        result = LinktreeStrategy().extract(_doc("https://linktr.ee/testartist", html))

        assert _identities(result) == {"instagram:testartist"}
        assert result.dropped == 1

    def test_malformed_anchor_keeps_other_anchors(self) -> None:
        """Test that a bad href only loses that anchor."""
        html = (
            "<html><body>"
            '<a href="https://instagram.com/testartist">IG</a>'
            '<a href="//[broken">Broken</a>'
            '<a href="https://open.spotify.com/artist/abc123">Spotify</a>'
            "</body></html>"
        )

        result = LinktreeStrategy().extract(_doc("https://linktr.ee/testartist", html))

        assert _identities(result) == {"instagram:testartist", "spotify:abc123"}


class TestBeaconsStrategy:
    """Tests for BeaconsStrategy."""

    def test_json_ld_and_anchors(self) -> None:
        """Test sameAs lists and anchors."""
        json_ld = {
            "@context": "https://schema.org",
            "@type": "Person",
            "name": "Test Artist",
            "sameAs": ["https://twitter.com/testartist", "https://open.spotify.com/artist/abc123"],
        }
        html = (
            '<html><head><meta property="og:title" content="Test Artist | Beacons">'
            f'<script type="application/ld+json">{json.dumps(json_ld)}</script></head><body>'
            '<a href="https://www.youtube.com/@testartist">YouTube</a>'
            '<a href="https://cdn.beacons.ai/images/logo.png">logo</a>'
            "</body></html>"
        )

        result = BeaconsStrategy().extract(_doc("https://beacons.ai/testartist", html))

        assert _identities(result) == {
            "twitter:testartist",
            "spotify:abc123",
            "youtube:@testartist",
        }
        assert result.display_name == "Test Artist"


class TestLayloStrategy:
    """Tests for LayloStrategy."""

    def test_next_data_social_fields(self) -> None:
        """Test socialUrl and website fields."""
        data = {
            "props": {
                "pageProps": {
                    "creator": {
                        "socialUrl": "https://instagram.com/testartist",
                        "website": "https://testartist.bandcamp.com",
                    }
                }
            }
        }
        html = "<html><body>" + _next_data(data) + '<a href="/drops/123">Drop</a></body></html>'

        result = LayloStrategy().extract(_doc("https://laylo.com/testartist", html))

        assert _identities(result) == {"instagram:testartist", "bandcamp:testartist"}


class TestYouTubeStrategy:
    """Tests for YouTubeStrategy."""

    INITIAL_DATA = {
        "metadata": {
            "channelMetadataRenderer": {
                "title": "Test Artist",
                "avatar": {
                    "thumbnails": [
                        {"url": "https://yt3.ggpht.com/small"},
                        {"url": "https://yt3.ggpht.com/large"},
                    ]
                },
            }
        },
        "contents": {
            "channelExternalLinkViewModel": {
                "title": {"content": "Instagram"},
                "link": {"content": "instagram.com/testartist"},
            }
        },
        "footer": {
            "urlEndpoint": {
                "url": "https://www.youtube.com/redirect?q=https%3A%2F%2Fopen.spotify.com%2Fartist%2Fabc123"
            }
        },
    }

    def test_document_url_is_about_tab(self) -> None:
        """Test that the About tab is fetched."""
        strategy = YouTubeStrategy()
        assert strategy.document_url("https://www.youtube.com/@testartist") == (
            "https://www.youtube.com/@testartist/about"
        )

    def test_initial_data_links_and_metadata(self) -> None:
        """Test ytInitialData parsing and redirect unwrapping."""
        html = (
            "<html><head><title>Test Artist - YouTube</title></head><body><script>"
            f"var ytInitialData = {json.dumps(self.INITIAL_DATA)};"
            "</script></body></html>"
        )

        result = YouTubeStrategy().extract(
            _doc("https://www.youtube.com/@testartist/about", html)
        )

        assert _identities(result) == {"instagram:testartist", "spotify:abc123"}
        instagram = next(link for link in result.links if link.platform_id == "instagram")
        assert instagram.display_text == "Instagram"
        assert result.display_name == "Test Artist"
        assert result.avatar_url == "https://yt3.ggpht.com/large"


class TestInstagramStrategy:
    """Tests for InstagramStrategy."""

    def test_external_url_bio_links_and_bio_text(self) -> None:
        """Test embedded JSON fields and bare URLs in the bio."""
        payload = (
            '{"external_url":"https:\\/\\/linktr.ee\\/testartist",'
            '"bio_links":[{"title":"","url":"https:\\/\\/open.spotify.com\\/artist\\/abc123"}]}'
        )
        html = (
            "<html><head>"
            '<meta property="og:title" content="Test Artist (@testartist) • Instagram photos and videos">'
            '<meta property="og:description" content="Music by Test Artist. youtube.com/@testartist">'
            '<meta property="og:image" content="https://scontent.cdninstagram.com/v/pic.jpg">'
            f'</head><body><script type="application/json">{payload}</script></body></html>'
        )

        result = InstagramStrategy().extract(_doc("https://instagram.com/testartist", html))

        assert _identities(result) == {
            "linktree:testartist",
            "spotify:abc123",
            "youtube:@testartist",
        }
        by_platform = {link.platform_id: link for link in result.links}
        assert by_platform["linktree"].signals == ["external_url"]
        assert by_platform["youtube"].confidence == 0.6
        assert result.display_name == "Test Artist"
        assert result.avatar_url == "https://scontent.cdninstagram.com/v/pic.jpg"


class TestSpotifyStrategy:
    """Tests for SpotifyStrategy."""

    STATE = {
        "entities": {
            "items": {
                "spotify:artist:abc123": {
                    "profile": {
                        "externalLinks": {
                            "items": [
                                {"name": "INSTAGRAM", "url": "https://instagram.com/testartist"},
                                {"name": "WIKIPEDIA", "url": "https://en.wikipedia.org/wiki/Test"},
                            ]
                        }
                    }
                }
            }
        }
    }

    def test_plain_json_state(self) -> None:
        """Test externalLinks from a plain JSON state script."""
        html = f'<html><body><script id="initialState">{json.dumps(self.STATE)}</script></body></html>'

        result = SpotifyStrategy().extract(_doc("https://open.spotify.com/artist/abc123", html))

        assert _identities(result) == {"instagram:testartist"}
        link = result.links[0]
        assert link.confidence == 0.95
        assert "external_links" in link.signals
        assert link.display_text == "INSTAGRAM"

    def test_base64_state(self) -> None:
        """Test base64 encoded state scripts."""
        encoded = base64.b64encode(json.dumps(self.STATE).encode()).decode()
        html = f'<html><body><script id="initialState">{encoded}</script></body></html>'

        result = SpotifyStrategy().extract(_doc("https://open.spotify.com/artist/abc123", html))

        assert _identities(result) == {"instagram:testartist"}

    def test_only_artists_are_ingestible(self) -> None:
        """Test that album and track URLs are not valid sources."""
        strategy = SpotifyStrategy()
        assert strategy.validate_url("https://open.spotify.com/artist/abc123") == (
            "https://open.spotify.com/artist/abc123"
        )
        assert strategy.validate_url("https://open.spotify.com/album/xyz789") is None
        assert SpotifyStrategy.accepts_canonical_id("track/xyz789") is False


class TestLyricsStrategy:
    """Tests for LyricsStrategy."""

    def test_handles_to_profile_urls(self) -> None:
        """Test plain and escaped handle fields."""
        html = (
            '<html><head><meta property="og:title" '
            'content="Test Artist Lyrics, Songs, and Albums | Genius"></head><body><script>'
            'window.__PRELOADED_STATE__ = {"instagram_name":"testartist","twitter_name":"TestArtist"};'
            + r"""window.more = JSON.parse('{\"facebook_name\":\"testartistpage\"}');"""
            + "</script></body></html>"
        )

        result = LyricsStrategy().extract(_doc("https://genius.com/artists/test-artist", html))

        assert _identities(result) == {
            "instagram:testartist",
            "twitter:testartist",
            "facebook:testartistpage",
        }
        assert result.display_name == "Test Artist"


class TestBuildResult:
    """Tests for candidate normalization and deduplication."""

    def test_duplicates_keep_highest_confidence(self) -> None:
        """Test that duplicate identities merge signals and confidence."""
        strategy = LinktreeStrategy()
        doc = _doc("https://linktr.ee/testartist", "")
        result = strategy.build_result(
            doc,
            [
                LinkCandidate(url="instagram.com/testartist", signal="anchor", confidence=0.5),
                LinkCandidate(
                    url="https://www.instagram.com/TestArtist?igshid=x",
                    signal="next_data",
                    confidence=0.9,
                    text="IG",
                ),
            ],
        )

        assert len(result.links) == 1
        link = result.links[0]
        assert link.confidence == 0.9
        assert link.signals == ["anchor", "next_data"]
        assert link.display_text == "IG"
        assert link.url == "https://instagram.com/testartist"

    def test_extracted_link_confidence_range(self) -> None:
        """Test that confidence outside 0..1 is rejected."""
        with pytest.raises(ValueError):
            ExtractedLink(
                raw_url="x",
                platform_id="instagram",
                canonical_id="x",
                url="https://instagram.com/x",
                confidence=1.5,
                source_platform="linktree",
            )


class TestStrategyRegistry:
    """Tests for the job type to strategy registry."""

    def test_every_job_type_registered(self) -> None:
        """Test full coverage of job types."""
        assert set(list_strategies()) == set(JobType)

    def test_get_strategy(self) -> None:
        """Test lookup by enum and by string value."""
        assert isinstance(get_strategy(JobType.IMPORT_LINKTREE), LinktreeStrategy)
        assert isinstance(get_strategy("import_lyrics"), LyricsStrategy)

    def test_get_strategy_unknown(self) -> None:
        """Test that unknown job types raise."""
        with pytest.raises(ValueError):
            get_strategy("import_myspace")

    def test_strategy_for_platform(self) -> None:
        """Test reverse lookup by platform."""
        assert strategy_for_platform("genius") is LyricsStrategy
        assert strategy_for_platform("tiktok") is None

    def test_get_strategy_info(self) -> None:
        """Test strategy info."""
        info = get_strategy_info("import_spotify")
        assert info["platform"] == "spotify"
        assert info["class"] == "SpotifyStrategy"
        assert get_strategy_info("nope") is None


class TestHtmlHelpers:
    """Tests for the shared parsing helpers."""

    def test_unwrap_instagram_redirect(self) -> None:
        """Test l.instagram.com wrappers."""
        wrapped = "https://l.instagram.com/?u=https%3A%2F%2Flinktr.ee%2Ftestartist&e=AT0"
        assert unwrap_redirect(wrapped) == "https://linktr.ee/testartist"

    def test_unwrap_leaves_plain_urls(self) -> None:
        """Test that ordinary YouTube URLs are not unwrapped."""
        url = "https://www.youtube.com/watch?v=abc&q=x"
        assert unwrap_redirect(url) == url

    def test_extract_json_assignment(self) -> None:
        """Test JavaScript variable extraction."""
        text = 'foo; window["ytInitialData"] = {"a": [1, 2]}; bar'
        assert extract_json_assignment(text, "ytInitialData") == {"a": [1, 2]}
        assert extract_json_assignment("nothing here", "ytInitialData") is None

    def test_find_urls_in_text(self) -> None:
        """Test bare URL detection in bios."""
        assert find_urls_in_text("listen: open.spotify.com/artist/abc123.") == [
            "open.spotify.com/artist/abc123"
        ]

    def test_clean_display_name(self) -> None:
        """Test suffix stripping."""
        assert clean_display_name("  Test   Artist | Linktree ", (" | Linktree",)) == "Test Artist"
        assert clean_display_name(" | ", ()) is None

    def test_default_avatar(self) -> None:
        """Test placeholder avatar detection."""
        assert is_default_avatar("https://cdn.example.com/default-avatar.png") is True
        assert is_default_avatar("https://cdn.example.com/me.png") is False

    def test_iter_anchors_skips_unjoinable_href(self) -> None:
        """Test that hrefs urljoin rejects are skipped."""
        soup = parse_html('<a href="//[broken">x</a><a href="/about">About</a>')
        assert list(iter_anchors(soup, base_url="https://linktr.ee/testartist")) == [
            ("https://linktr.ee/about", "About")
        ]

    def test_unwrap_redirect_malformed_relative_url(self) -> None:
        """Test that unjoinable URLs are returned unchanged."""
        assert unwrap_redirect("//[broken", base_url="https://linktr.ee/testartist") == "//[broken"
