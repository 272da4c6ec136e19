"""Tests for glyph classification and its backends."""

from concurrent.futures import ThreadPoolExecutor

import cv2
import numpy as np
import pytest

from micrline.engines.base import ClassifierBackend
from micrline.engines.classifier import GlyphClassifier, build_backend
from micrline.engines.cmc7_engine import Cmc7BarEngine
from micrline.engines.features import HU_FLOOR, compute_features
from micrline.engines.knn_engine import KNearestEngine
from micrline.engines.template_engine import TemplateMatchingEngine
from micrline.errors import ConfigError, ResourceError
from micrline.fonts import render_glyph
from micrline.models import CMC7_ALPHABET, DIGITS, E13B_ALPHABET, Glyph, Region


def _glyph(image, index=0):
    return Glyph(region=Region(0, 0, image.shape[1], image.shape[0]), index=index, image=image)


def _top(scores):
    return max(scores, key=scores.get)


class _FixedBackend(ClassifierBackend):
    fonts = frozenset({"e13b"})

    def __init__(self, scores):
        self._scores = scores

    @property
    def name(self):
        return "fixed"

    def score(self, glyph_image):
        return dict(self._scores)


@pytest.fixture(scope="module")
def template_engine():
    return TemplateMatchingEngine()


@pytest.fixture(scope="module")
def knn_engine():
    return KNearestEngine()


def _resampled(symbol, height=47):
    """A reference glyph pushed through a resize and re-threshold, like a band crop."""
    ref = render_glyph(symbol, 100)
    width = max(3, round(ref.shape[1] * height / ref.shape[0]))
    small = cv2.resize(ref, (width, height), interpolation=cv2.INTER_LINEAR)
    crop = cv2.resize(small, (ref.shape[1], ref.shape[0]), interpolation=cv2.INTER_LINEAR)
    return np.where(crop > 127, 255, 0).astype(np.uint8)


class TestFeatures:
    def test_symmetric_glyph_hu_moments_clamped(self):
        hu = compute_features(render_glyph("2"))["hu_moments"]
        assert np.all(np.isfinite(hu))
        assert hu[2] == pytest.approx(-np.log10(HU_FLOOR))
        assert hu[3] == pytest.approx(-np.log10(HU_FLOOR))

    @pytest.mark.parametrize("symbol", ["2", "5"])
    def test_resampled_crop_hu_close_to_reference(self, symbol):
        ref = compute_features(render_glyph(symbol, 100))["hu_moments"][:4]
        crop = compute_features(_resampled(symbol))["hu_moments"][:4]
        assert np.linalg.norm(ref - crop) < 3.0


class TestTemplateMatchingEngine:
    @pytest.mark.parametrize("symbol", ["2", "3", "5", "6", "9"])
    def test_resampled_crop_matches_reference(self, template_engine, symbol):
        scores = template_engine.score(np.pad(_resampled(symbol), 2))
        assert _top(scores) == symbol

    def test_reference_glyphs_match_themselves(self, template_engine):
        for symbol in E13B_ALPHABET:
            scores = template_engine.score(np.pad(render_glyph(symbol), 2))
            assert _top(scores) == symbol
            assert scores[symbol] == pytest.approx(1.0)

    def test_scores_in_unit_range(self, template_engine):
        scores = template_engine.score(np.pad(render_glyph("5", 40), 2))
        assert set(scores) == set(E13B_ALPHABET)
        assert all(0.0 <= s <= 1.0 for s in scores.values())

    def test_mirror_pair_distinguished(self, template_engine):
        two = template_engine.score(render_glyph("2", 56))
        five = template_engine.score(render_glyph("5", 56))
        assert two["2"] > two["5"]
        assert five["5"] > five["2"]

    def test_tiny_crop_unscored(self, template_engine):
        assert template_engine.score(np.zeros((2, 2), np.uint8)) == {}

    def test_templates_dir(self, tmp_path):
        # Dark-on-white PNGs, as written by the asset scripts
        for symbol in E13B_ALPHABET:
            cv2.imwrite(str(tmp_path / f"{symbol}.png"), 255 - np.pad(render_glyph(symbol), 8))
        engine = TemplateMatchingEngine(templates_dir=tmp_path)
        assert _top(engine.score(render_glyph("9"))) == "9"

    def test_cmc7_references(self):
        engine = TemplateMatchingEngine(font="cmc7")
        assert set(engine.score(render_glyph("S2", font="cmc7"))) == set(CMC7_ALPHABET)


class TestKNearestEngine:
    def test_opencv_provides_ml(self):
        assert int(cv2.__version__.split(".")[0]) == 4
        assert hasattr(cv2.ml, "KNearest_create")
        assert hasattr(cv2.ml, "KNearest_load")

    def test_digits(self, knn_engine):
        for symbol in DIGITS:
            assert _top(knn_engine.score(render_glyph(symbol, 80))) == symbol

    def test_save_and_load(self, knn_engine, tmp_path):
        path = tmp_path / "models" / "knn_e13b.xml"
        knn_engine.save(path)
        loaded = KNearestEngine(model_path=path)
        glyph = render_glyph("4", 56)
        assert _top(loaded.score(glyph)) == _top(knn_engine.score(glyph))

    def test_corrupt_model(self, tmp_path):
        path = tmp_path / "knn_e13b.xml"
        path.write_text("not a model")
        with pytest.raises(ResourceError):
            KNearestEngine(model_path=path)

    def test_blank_crop_unscored(self, knn_engine):
        assert knn_engine.score(np.zeros((20, 20), np.uint8)) == {}


class TestCmc7BarEngine:
    def test_every_symbol(self):
        engine = Cmc7BarEngine()
        for symbol in CMC7_ALPHABET:
            scores = engine.score(np.pad(render_glyph(symbol, 80, "cmc7"), 2))
            assert _top(scores) == symbol
            assert scores[symbol] == pytest.approx(1.0)

    def test_scale_invariant(self):
        scores = Cmc7BarEngine().score(render_glyph("7", 160, "cmc7"))
        assert _top(scores) == "7"

    def test_wrong_stroke_count(self):
        assert Cmc7BarEngine().score(render_glyph("0", 80, "e13b")) == {}


class TestBuildBackend:
    def test_known_backends(self):
        assert build_backend("template", "e13b").name == "template"
        assert build_backend("cmc7_bars", "cmc7").name == "cmc7_bars"

    def test_font_mismatch(self):
        with pytest.raises(ConfigError):
            build_backend("cmc7_bars", "e13b")

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            build_backend("tesseract", "e13b")

    def test_assets_layout(self, tmp_path):
        templates = tmp_path / "templates" / "e13b"
        templates.mkdir(parents=True)
        cv2.imwrite(str(templates / "1.png"), 255 - np.pad(render_glyph("1"), 8))
        backend = build_backend("template", "e13b", tmp_path)
        assert backend.templates_dir == templates


class TestGlyphClassifier:
    def test_candidates_sorted_descending(self, template_engine):
        classifier = GlyphClassifier([template_engine])
        candidates = classifier.classify(_glyph(render_glyph("6")))
        scores = [c.score for c in candidates]
        assert scores == sorted(scores, reverse=True)
        assert [c.symbol for c in candidates][0] == "6"
        assert len(candidates) == len(E13B_ALPHABET)

    def test_ties_follow_alphabet_order(self):
        classifier = GlyphClassifier([_FixedBackend({"9": 0.5, "1": 0.5, "transit": 0.5})])
        symbols = [c.symbol for c in classifier.classify(_glyph(np.zeros((5, 5), np.uint8)))]
        assert symbols[:3] == ["1", "9", "transit"]
        # the remaining unscored symbols keep canonical order too
        assert symbols[3:] == [s for s in E13B_ALPHABET if s not in ("1", "9", "transit")]

    @pytest.mark.parametrize("score_type, expected", [
        ("min", 0.2),
        ("max", 0.8),
        ("avg", 0.5),
    ])
    def test_score_aggregation(self, score_type, expected):
        classifier = GlyphClassifier(
            [_FixedBackend({"3": 0.2}), _FixedBackend({"3": 0.8})],
            score_type=score_type,
        )
        best = classifier.classify(_glyph(np.zeros((5, 5), np.uint8)))[0]
        assert best.symbol == "3"
        assert best.score == pytest.approx(expected)

    def test_rejection_below_min_score(self):
        classifier = GlyphClassifier([_FixedBackend({"3": 0.25})], min_score=0.3)
        glyph = classifier.classify_all([_glyph(np.zeros((5, 5), np.uint8))])[0]
        assert glyph.rejected
        assert glyph.candidates[0].symbol == "3"

    def test_unscored_glyph_rejected(self):
        classifier = GlyphClassifier([_FixedBackend({})])
        glyph = classifier.classify_all([_glyph(np.zeros((5, 5), np.uint8))])[0]
        assert glyph.rejected

    def test_pool_matches_serial(self, template_engine):
        images = [render_glyph(s, 48) for s in "0123456789"]
        serial = GlyphClassifier([template_engine]).classify_all(
            [_glyph(img, i) for i, img in enumerate(images)]
        )
        with ThreadPoolExecutor(max_workers=4) as pool:
            pooled = GlyphClassifier([template_engine], executor=pool).classify_all(
                [_glyph(img, i) for i, img in enumerate(images)]
            )
        assert [g.candidates for g in serial] == [g.candidates for g in pooled]

    def test_requires_backend(self):
        with pytest.raises(ConfigError):
            GlyphClassifier([])
