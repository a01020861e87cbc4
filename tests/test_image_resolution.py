"""Tests for hero-image candidate collection and HEAD validation."""
import pytest
from bs4 import BeautifulSoup

from recipe_acquisition.layers.image_resolution import ImageResolver, is_likely_bad_image_url
from tests.conftest import jsonld_page

URL = "https://example.com/recipe-a"


@pytest.fixture
def resolver(request_service):
    return ImageResolver(request_service)


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


class TestBadImageFilter:

    @pytest.mark.parametrize("url", [
        "https://example.com/logo.png",
        "https://example.com/img/site-logo.jpg",
        "https://example.com/icons/sprite.png",
        "https://example.com/a/ad/300x250.jpg",
        "https://example.com/pixel.gif",
        "https://example.com/drawing.svg",
        "https://example.com/favicon.ico",
    ])
    def test_rejected(self, url):
        assert is_likely_bad_image_url(url)

    @pytest.mark.parametrize("url", [
        "https://example.com/bread-loaf.jpg",
        "https://example.com/uploads/salad-hero.webp",
        "https://example.com/images/header-pancakes.jpg",
    ])
    def test_accepted(self, url):
        assert not is_likely_bad_image_url(url)


class TestCandidates:

    def test_widest_jsonld_image_wins(self, resolver):
        html = jsonld_page({
            "@type": "Recipe",
            "name": "Cake",
            "image": [
                {"@type": "ImageObject", "url": "https://example.com/cake-small.jpg", "width": 300},
                {"@type": "ImageObject", "url": "https://example.com/cake-medium.jpg", "width": 800},
                {"@type": "ImageObject", "url": "https://example.com/cake-large.jpg", "width": 1600},
            ],
        })
        assert resolver.jsonld_candidate(soup_of(html), URL) == "https://example.com/cake-large.jpg"

    def test_rating_image_used_when_recipe_has_none(self, resolver):
        html = jsonld_page({
            "@type": "Recipe",
            "name": "Cake",
            "aggregateRating": {"ratingValue": 5, "image": "https://example.com/cake-rated.jpg"},
        })
        assert resolver.jsonld_candidate(soup_of(html), URL) == "https://example.com/cake-rated.jpg"

    def test_candidate_order_and_dedup(self, resolver):
        html = jsonld_page(
            {"@type": "Recipe", "name": "Cake", "image": "https://example.com/cake.jpg"},
            extra_head="""
            <meta property="og:image" content="https://example.com/cake.jpg">
            <meta name="twitter:image" content="https://example.com/cake-twitter.jpg">
            <link rel="image_src" href="/cake-link.jpg">""",
            body="""
            <picture><source srcset="https://example.com/cake-pic.webp 1x, https://example.com/cake-pic2.webp 2x"></picture>
            <article><img src="/cake-body.jpg" width="800" height="500"></article>""",
        )
        assert resolver.collect_candidates(soup_of(html), URL) == [
            "https://example.com/cake.jpg",
            "https://example.com/cake-twitter.jpg",
            "https://example.com/cake-link.jpg",
            "https://example.com/cake-pic.webp",
            "https://example.com/cake-body.jpg",
        ]

    def test_narrow_img_is_never_a_candidate(self, resolver):
        html = """<article class="recipe hero">
            <img class="recipe-hero featured" src="https://example.com/recipe-hero-featured.jpg" width="150" height="600">
        </article>"""
        assert resolver.img_candidates(soup_of(html), URL) == []

    def test_img_scoring(self, resolver):
        html = """
            <footer><img src="/footer-photo.jpg" width="640" height="400"></footer>
            <div class="entry-content"><img src="/dish.jpg" width="1200" height="800"></div>
            <img src="/unsized.jpg">"""
        candidates = resolver.img_candidates(soup_of(html), URL)
        assert candidates == [
            "https://example.com/dish.jpg",
            "https://example.com/footer-photo.jpg",
            "https://example.com/unsized.jpg",
        ]

    def test_narrow_picture_img_is_skipped(self, resolver):
        html = """<picture><img src="/dish-small.jpg" width="150" height="100"></picture>
            <picture><img src="/dish-wide.jpg" width="900" height="600"></picture>"""
        assert resolver.picture_candidate(soup_of(html), URL) == "https://example.com/dish-wide.jpg"

    def test_unparseable_candidate_is_dropped(self, resolver):
        html = """<meta property="og:image" content="ftp://[broken/cake.jpg">
            <meta name="twitter:image" content="https://example.com/cake-twitter.jpg">"""
        assert resolver.collect_candidates(soup_of(html), URL) == ["https://example.com/cake-twitter.jpg"]

    def test_lazy_attributes_and_srcset_upgrade(self, resolver):
        html = """<article>
            <img data-src="/lazy.jpg" srcset="/lazy-400.jpg 400w, /lazy-1200.jpg 1200w" width="600" height="400">
        </article>"""
        assert resolver.img_candidates(soup_of(html), URL) == ["https://example.com/lazy-1200.jpg"]


class TestValidation:

    @pytest.mark.asyncio
    async def test_valid_image(self, resolver, fake_web):
        fake_web.add_image("https://example.com/cake.jpg", size=50000)
        assert await resolver.validate_image_url("https://example.com/cake.jpg")

    @pytest.mark.asyncio
    async def test_small_image_rejected(self, resolver, fake_web):
        fake_web.add_image("https://example.com/thumb.jpg", size=2000)
        assert not await resolver.validate_image_url("https://example.com/thumb.jpg")

    @pytest.mark.asyncio
    async def test_non_image_rejected(self, resolver, fake_web):
        fake_web.add_image("https://example.com/page.jpg", content_type="text/html")
        assert not await resolver.validate_image_url("https://example.com/page.jpg")

    @pytest.mark.asyncio
    async def test_missing_image_rejected(self, resolver):
        assert not await resolver.validate_image_url("https://example.com/gone.jpg")


class TestResolve:

    @pytest.mark.asyncio
    async def test_first_valid_candidate_wins(self, resolver, fake_web):
        html = jsonld_page(
            {"@type": "Recipe", "name": "Cake", "image": "https://example.com/cake-broken.jpg"},
            extra_head='<meta property="og:image" content="https://example.com/cake-og.jpg">',
        )
        fake_web.add_image("https://example.com/cake-og.jpg")
        assert await resolver.resolve(URL, html) == "https://example.com/cake-og.jpg"

    @pytest.mark.asyncio
    async def test_malformed_candidate_does_not_stop_resolution(self, resolver, fake_web):
        html = jsonld_page(
            {"@type": "Recipe", "name": "Cake", "image": "https://example.com:notaport/cake.jpg"},
            extra_head='<meta property="og:image" content="https://example.com/cake-og.jpg">',
        )
        fake_web.add_image("https://example.com/cake-og.jpg")
        assert await resolver.resolve(URL, html) == "https://example.com/cake-og.jpg"

    @pytest.mark.asyncio
    async def test_no_valid_candidate(self, resolver):
        html = '<meta property="og:image" content="https://example.com/cake-og.jpg">'
        assert await resolver.resolve(URL, html) is None

    @pytest.mark.asyncio
    async def test_refetch_prefers_fresh_html(self, resolver, fake_web):
        fake_web.add_page(URL, '<meta property="og:image" content="https://example.com/fresh.jpg">')
        fake_web.add_image("https://example.com/fresh.jpg")
        fake_web.add_image("https://example.com/stale.jpg")
        stale = '<meta property="og:image" content="https://example.com/stale.jpg">'
        assert await resolver.resolve_with_refetch(URL, stale) == "https://example.com/fresh.jpg"

    @pytest.mark.asyncio
    async def test_refetch_failure_uses_existing_html(self, resolver, fake_web):
        fake_web.add_image("https://example.com/stale.jpg")
        stale = '<meta property="og:image" content="https://example.com/stale.jpg">'
        assert await resolver.resolve_with_refetch(URL, stale) == "https://example.com/stale.jpg"
