"""
Tests for provider output normalization.
"""

import pytest

from pipeline.errors import UnrecognizedOutputShape
from pipeline.output_normalizer import (
    FileLikeOutput,
    MappingOutput,
    UrlListOutput,
    UrlOutput,
    classify_output,
    normalize_output,
)

URL = "https://x/a.mp4"


class FakeFileOutput:
    """Mimics replicate.helpers.FileOutput."""

    def __init__(self, url):
        self.url = url


class StrOnlyOutput:
    def __init__(self, url):
        self._url = url

    def __str__(self):
        return self._url


class TestNormalizeOutput:
    @pytest.mark.parametrize("raw", [URL, [URL], {"url": URL}])
    def test_known_shapes_give_same_url(self, raw):
        assert normalize_output(raw) == URL

    def test_unrecognized_mapping_raises(self):
        with pytest.raises(UnrecognizedOutputShape):
            normalize_output({"foo": 1})

    def test_mapping_key_priority(self):
        raw = {"output": "https://x/b.mp4", "video": URL}
        assert normalize_output(raw) == URL

    def test_list_uses_first_element(self):
        assert normalize_output([URL, "https://x/b.mp4"]) == URL

    def test_nested_shapes(self):
        assert normalize_output({"output": [{"uri": URL}]}) == URL

    def test_file_output_object(self):
        assert normalize_output(FakeFileOutput(URL)) == URL

    def test_object_whose_str_is_url(self):
        assert normalize_output(StrOnlyOutput(URL)) == URL

    @pytest.mark.parametrize("raw", [None, 42, [], "not a url", "ftp://x/a.mp4", {"url": ""}])
    def test_rejects_non_http(self, raw):
        with pytest.raises(UnrecognizedOutputShape):
            normalize_output(raw)


class TestClassifyOutput:
    def test_classification_order(self):
        assert isinstance(classify_output(URL), UrlOutput)
        assert isinstance(classify_output((URL,)), UrlListOutput)
        assert isinstance(classify_output({"url": URL}), MappingOutput)
        assert isinstance(classify_output(FakeFileOutput(URL)), FileLikeOutput)

    def test_unknown_object(self):
        with pytest.raises(UnrecognizedOutputShape):
            classify_output(object())
