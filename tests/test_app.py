import json
import threading

from adfetch.downloader import MANIFEST_NAME
from conftest import make_ad

UNREACHABLE = 'http://127.0.0.1:1/nothing.jpg'


def test_index_page(client):
    resp = client.get('/')
    assert resp.status_code == 200
    assert b'AdFetch' in resp.data
    assert client.get('/logs').status_code == 200


def test_search_requires_query(client, stub):
    for qs in ('', '?query=', '?query=%20%20'):
        resp = client.get('/api/search' + qs)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Search query is required'
    assert stub.requests == []


def test_search_proxies_upstream(client, stub):
    body = {'data': [make_ad('9')]}
    stub.add_json('/v20.0/ads_archive', json.dumps(body))

    resp = client.get('/api/search?query=shoes&searchType=keyword&country=DE&limit=5')

    assert resp.status_code == 200
    assert resp.get_json() == body
    params = stub.requests[0][1]
    assert params['access_token'] == 'test-token'
    assert params['ad_reached_countries'] == 'DE'


def test_search_without_token(ctx, client, stub):
    ctx.config.facebook_access_token = ''
    resp = client.get('/api/search?query=shoes')
    assert resp.status_code == 400
    data = resp.get_json()
    assert data['needToken'] is True
    assert data['error'] and data['message']
    assert stub.requests == []


def test_search_upstream_failure(client, stub):
    stub.add_json('/v20.0/ads_archive', '{"error": {"message": "Invalid parameter"}}', status=400)
    resp = client.get('/api/search?query=shoes')
    assert resp.status_code == 500
    assert resp.get_json() == {
        'error': 'Failed to search ads',
        'details': {'error': {'message': 'Invalid parameter'}},
        'statusCode': 400,
    }


def test_set_token(ctx, client, stub):
    stub.add_json('/v20.0/me', '{"id": "1"}')
    ctx.config.facebook_access_token = ''

    resp = client.post('/api/set-token', json={'token': 'fresh'})

    assert resp.status_code == 200
    assert resp.get_json()['success'] is True
    assert ctx.active_token() == 'fresh'


def test_set_token_invalid_keeps_previous(ctx, client, stub):
    stub.add_json('/v20.0/me', '{"error": {"message": "bad"}}', status=400)
    resp = client.post('/api/set-token', json={'token': 'bad'})
    assert resp.status_code == 400
    assert resp.get_json()['success'] is False
    assert ctx.active_token() == 'test-token'


def test_set_token_missing(client, stub):
    resp = client.post('/api/set-token', json={})
    assert resp.status_code == 400
    assert resp.get_json()['success'] is False
    assert stub.requests == []


def test_user_token_used_for_search(ctx, client, stub):
    stub.add_json('/v20.0/me', '{"id": "1"}')
    stub.add_json('/v20.0/ads_archive', '{"data": []}')
    client.post('/api/set-token', json={'token': 'user-token'})
    client.get('/api/search?query=x')
    assert stub.requests[-1][1]['access_token'] == 'user-token'


def test_download_empty_ads(client, config):
    for payload in ({'ads': [], 'downloadType': 'all'}, {}):
        resp = client.post('/api/download', json=payload)
        assert resp.status_code == 400
        assert 'error' in resp.get_json()
    assert not config.download_dir.exists()


def test_download_success(client, stub, config):
    stub.add('/a.jpg', b'a' * 3000)
    stub.add('/b.mp4', b'b' * 3000)
    ads = [make_ad('1', images=[stub.url('/a.jpg')]), make_ad('2', videos=[stub.url('/b.mp4')])]

    resp = client.post('/api/download', json={'ads': ads, 'downloadType': 'all'})

    assert resp.status_code == 200
    data = resp.get_json()
    assert data['success'] is True
    assert data['message'] == 'Downloaded 2 files'
    assert data['fileCount'] == 2
    batch = config.download_dir / data['batchDir'].rsplit('/', 1)[-1]
    assert sorted(p.name for p in batch.iterdir()) == ['1_image_0.jpg', '2_video_0.mp4', MANIFEST_NAME]


def test_download_partial_failure(client, stub, config):
    stub.add('/a.jpg', b'a' * 3000)
    ads = [make_ad('1', images=[stub.url('/a.jpg'), UNREACHABLE])]

    resp = client.post('/api/download', json={'ads': ads, 'downloadType': 'images'})

    assert resp.status_code == 500
    data = resp.get_json()
    assert data['error'] == 'Failed to download ads'
    assert '1 of 2' in data['details']
    assert [r['ok'] for r in data['results']] == [True, False]
    batch_dirs = list(config.download_dir.iterdir())
    assert len(batch_dirs) == 1
    # already-written siblings stay on disk
    assert (batch_dirs[0] / '1_image_0.jpg').exists()


def test_concurrent_downloads_use_distinct_dirs(ctx, stub, config):
    from app import create_app

    stub.add('/a.jpg', b'a' * 1000)
    app = create_app(ctx)
    dirs = []

    def post():
        with app.test_client() as c:
            resp = c.post('/api/download', json={'ads': [make_ad('1', images=[stub.url('/a.jpg')])]})
            dirs.append(resp.get_json()['batchDir'])

    threads = [threading.Thread(target=post) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(dirs)) == 2
    assert len(list(config.download_dir.iterdir())) == 2


def test_logs_endpoint(client, stub):
    client.get('/api/search?query=nothing-here')
    logs = client.get('/api/logs').get_json()
    assert isinstance(logs, list)
    assert any('Search request received' in entry['message'] for entry in logs)
    assert any(entry['type'] == 'error' for entry in logs)
    assert {'type', 'message', 'timestamp'} <= set(logs[0])


def test_set_token_rejects_non_string(client, stub):
    for payload in ({'token': 123}, {'token': ['a']}, ['token'], 'token'):
        resp = client.post('/api/set-token', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()['success'] is False
    resp = client.post('/api/set-token', data='not json', content_type='text/plain')
    assert resp.status_code == 400
    assert stub.requests == []


def test_set_token_invalid_error_shape(client, stub):
    stub.add_json('/v20.0/me', '{"error": "Invalid OAuth"}', status=400)
    resp = client.post('/api/set-token', json={'token': 'bad'})
    assert resp.status_code == 400
    assert resp.get_json() == {'success': False, 'message': 'Token is invalid or expired'}


def test_download_rejects_non_object_body(client, config):
    for payload in ([make_ad('1')], 'ads', 3):
        resp = client.post('/api/download', json=payload)
        assert resp.status_code == 400
        assert 'error' in resp.get_json()
    resp = client.post('/api/download', json={'ads': [make_ad('1')], 'downloadType': ['images']})
    assert resp.status_code == 400
    assert not config.download_dir.exists()


def test_download_bad_asset_url_reports_json(client, stub):
    stub.add('/a.jpg', b'a' * 500)
    ads = [make_ad('1', images=[stub.url('/a.jpg'), '//cdn.example.com/a.jpg'])]

    resp = client.post('/api/download', json={'ads': ads, 'downloadType': 'images'})

    assert resp.status_code == 500
    data = resp.get_json()
    assert data['error'] == 'Failed to download ads'
    assert data['fileCount'] == 1
    assert [r['ok'] for r in data['results']] == [True, False]


def test_download_duplicate_ids(client, config):
    resp = client.post('/api/download', json={'ads': [make_ad('4'), make_ad('4')]})
    assert resp.status_code == 400
    assert 'Duplicate' in resp.get_json()['error']
    assert not config.download_dir.exists()


def test_page_escapes_quotes():
    from app import HTML, LOGS_HTML

    for template in (HTML, LOGS_HTML):
        assert ".replace(/\"/g,'&quot;')" in template
        assert ".replace(/'/g,'&#39;')" in template
