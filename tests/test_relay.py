import asyncio

import httpx
import pytest

from assetproxy.config import MAX_SIZE
from assetproxy.utils import ResourceLimitError, UpstreamError
from assetproxy.web.relay import filter_response, limit_stream, parse_content_length


def _headers(**kw) -> httpx.Headers:
    return httpx.Headers({k.replace('_', '-'): v for k, v in kw.items()})


async def _collect(chunks, max_bytes):
    async def gen():
        for c in chunks:
            yield c
    return [c async for c in limit_stream(gen(), max_bytes)]


@pytest.mark.parametrize('status', [200, 304])
def test_ok_and_not_modified_are_relayed(status):
    head = filter_response(status, _headers(content_type='image/png'))
    assert head.status_code == status
    assert head.headers['Content-Type'] == 'image/png'


@pytest.mark.parametrize('status', [201, 204, 206, 302, 404, 500])
def test_other_statuses_are_not_found(status):
    with pytest.raises(UpstreamError) as exc:
        filter_response(status, _headers(content_type='image/png'))
    assert exc.value.status_code == 404
    assert exc.value.message == ''


@pytest.mark.parametrize('ctype', ['text/html', 'application/octet-stream', '', 'img/png'])
def test_non_image_content_type_is_rejected(ctype):
    with pytest.raises(UpstreamError) as exc:
        filter_response(200, _headers(content_type=ctype))
    assert exc.value.message == 'Received invalid Content-Type'


def test_missing_content_type_is_rejected():
    with pytest.raises(UpstreamError):
        filter_response(200, httpx.Headers())


def test_declared_length_over_cap_is_too_large():
    with pytest.raises(ResourceLimitError) as exc:
        filter_response(200, _headers(content_type='image/jpeg', content_length='10000000'))
    assert exc.value.status_code == 400
    assert exc.value.message == 'Response is too large'


def test_declared_length_at_cap_is_relayed():
    head = filter_response(200, _headers(content_type='image/jpeg', content_length=str(MAX_SIZE)))
    assert head.headers['Content-Length'] == str(MAX_SIZE)


def test_cap_is_configurable():
    with pytest.raises(ResourceLimitError):
        filter_response(200, _headers(content_type='image/gif', content_length='11'), max_size=10)


def test_unparsable_content_length_is_dropped():
    head = filter_response(200, _headers(content_type='image/gif', content_length='lots'))
    assert 'Content-Length' not in head.headers
    assert parse_content_length('-1') is None
    assert parse_content_length(' 42 ') == 42


def test_relayed_header_selection():
    upstream = _headers(
        content_type='image/webp',
        etag='"abc123"',
        content_encoding='gzip',
        cache_control='max-age=60',
        set_cookie='a=b',
        x_content_type_options='sniff-away',
        server='nginx',
    )
    head = filter_response(200, upstream)
    assert head.headers == {
        'Content-Type': 'image/webp',
        'ETag': '"abc123"',
        'Content-Encoding': 'gzip',
        'Cache-Control': 'max-age=60',
        'X-Content-Type-Options': 'nosniff',
    }


def test_cache_control_defaults_when_absent():
    head = filter_response(200, _headers(content_type='image/png'))
    assert head.headers['Cache-Control'] == 'public, max-age=3600'
    custom = filter_response(200, _headers(content_type='image/png'), default_cache_control='no-store')
    assert custom.headers['Cache-Control'] == 'no-store'


def test_limit_stream_passes_small_bodies_through():
    out = asyncio.run(_collect([b'ab', b'', b'cd'], 10))
    assert b''.join(out) == b'abcd'


def test_limit_stream_truncates_exactly_at_cap():
    out = asyncio.run(_collect([b'abc', b'defg', b'hij'], 5))
    assert b''.join(out) == b'abcde'


def test_limit_stream_stops_reading_after_cap():
    consumed = []

    async def gen():
        for c in [b'1234', b'5678', b'9']:
            consumed.append(c)
            yield c

    async def run():
        return [c async for c in limit_stream(gen(), 4)]

    assert b''.join(asyncio.run(run())) == b'1234'
    assert consumed == [b'1234']
