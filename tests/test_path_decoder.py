import pytest

from src.fieldtrack.models.domain import Coordinate
from src.fieldtrack.services.tracking import path_decoder
from src.fieldtrack.services.tracking.errors import DecodeError
from src.fieldtrack.services.tracking.path_decoder import PathDecoder, decode_polyline

GOOGLE_SAMPLE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def test_decode_polyline_reference_sample():
    path = decode_polyline(GOOGLE_SAMPLE)

    assert path == (
        Coordinate(38.5, -120.2),
        Coordinate(40.7, -120.95),
        Coordinate(43.252, -126.453),
    )


def test_decode_polyline_matches_encoded_points(encode, straight_points):
    path = decode_polyline(encode(straight_points))

    assert [(point.lat, point.lng) for point in path] == straight_points


@pytest.mark.parametrize(
    "encoded",
    [
        GOOGLE_SAMPLE[:-1],  # ends inside a longitude value
        "_p~iF",  # latitude without longitude
        "_p~iF~ps|U_",  # second point truncated
        "_p~iF ~ps|U",  # character below the alphabet
        "~~~~~~~~~~~~",  # value never terminates
    ],
)
def test_decode_polyline_rejects_malformed_input(encoded):
    with pytest.raises(DecodeError):
        decode_polyline(encoded)


def test_decode_polyline_rejects_out_of_range_coordinates(encode):
    with pytest.raises(DecodeError):
        decode_polyline(encode([(95.0, 10.0)]))


def test_path_decoder_returns_empty_path_for_malformed_input():
    decoder = PathDecoder()

    path = decoder.decode(GOOGLE_SAMPLE[:-1])

    assert path == ()
    assert isinstance(decoder.last_error, DecodeError)
    # Never a partial path, and still the same answer the second time.
    assert decoder.decode(GOOGLE_SAMPLE[:-1]) == ()
    assert isinstance(decoder.last_error, DecodeError)


def test_path_decoder_empty_encoding_is_not_an_error():
    decoder = PathDecoder()

    assert decoder.decode("") == ()
    assert decoder.decode(None) == ()
    assert decoder.last_error is None


def test_path_decoder_caches_by_encoding(monkeypatch):
    calls = []
    original = path_decoder.decode_polyline

    def counting_decode(encoded):
        calls.append(encoded)
        return original(encoded)

    monkeypatch.setattr(path_decoder, "decode_polyline", counting_decode)
    decoder = PathDecoder()

    first = decoder.decode(GOOGLE_SAMPLE)
    second = decoder.decode(GOOGLE_SAMPLE)

    assert first is second
    assert calls == [GOOGLE_SAMPLE]
    assert decoder.is_cached(GOOGLE_SAMPLE)

    decoder.invalidate(GOOGLE_SAMPLE)
    assert not decoder.is_cached(GOOGLE_SAMPLE)
    assert decoder.decode(GOOGLE_SAMPLE) == first
    assert len(calls) == 2


def test_path_decoder_instances_do_not_share_cache():
    first = PathDecoder()
    second = PathDecoder()

    first.decode(GOOGLE_SAMPLE)

    assert first.is_cached(GOOGLE_SAMPLE)
    assert not second.is_cached(GOOGLE_SAMPLE)
    first.invalidate()
    assert not first.is_cached(GOOGLE_SAMPLE)
