"""
Graph API client
Token verification against /me and keyword search against /ads_archive.
"""

import json
import logging
import http.client
import urllib.error
import urllib.parse
import urllib.request

from .config import TOKEN_PLACEHOLDER
from .errors import CredentialError, UpstreamError, ValidationError

logger = logging.getLogger('adfetch.graph_api')

AD_FIELDS = ','.join([
    'id',
    'ad_creation_time',
    'ad_creative_bodies',
    'ad_creative_link_titles',
    'ad_creative_link_descriptions',
    'ad_creative_link_captions',
    'page_name',
    'page_id',
    'ad_delivery_start_time',
    'ad_delivery_stop_time',
    'ad_snapshot_url',
    'ad_creative_link_url',
    'ad_creative_images',
    'ad_creative_videos',
])

AD_ACTIVE_STATUSES = {'ALL', 'ACTIVE', 'INACTIVE'}
AD_TYPES = {'ALL', 'POLITICAL_AND_ISSUE_ADS', 'HOUSING_ADS', 'EMPLOYMENT_ADS', 'CREDIT_ADS'}
SEARCH_TYPES = {
    'keyword': 'KEYWORD_UNORDERED',
    'exact': 'KEYWORD_EXACT_PHRASE',
}


def is_usable_token(token) -> bool:
    return bool(token) and token.strip() != '' and token != TOKEN_PLACEHOLDER


def _mask(url: str, token: str) -> str:
    return url.replace(urllib.parse.quote(token, safe=''), 'TOKEN_HIDDEN').replace(token, 'TOKEN_HIDDEN')


def _decode_error_body(err: urllib.error.HTTPError):
    try:
        raw = err.read().decode('utf-8', errors='replace')
    except (OSError, http.client.HTTPException):
        return err.reason
    try:
        return json.loads(raw)
    except ValueError:
        return raw or err.reason


def _error_message(body):
    """Graph API errors look like {"error": {"message": ...}}, but not always."""
    if isinstance(body, dict):
        err = body.get('error')
        if isinstance(err, dict):
            return err.get('message') or err
        return err if err is not None else body
    return body


class GraphAPIClient:
    def __init__(self, api_url: str, timeout: float = 30.0, default_country: str = 'BR', languages: str = ''):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.default_country = default_country
        self.languages = languages

    @classmethod
    def from_config(cls, config):
        return cls(
            config.graph_api_url,
            timeout=config.request_timeout,
            default_country=config.default_country,
            languages=config.search_languages,
        )

    def _get(self, path: str, params: dict):
        return urllib.request.urlopen(
            f'{self.api_url}/{path}?{urllib.parse.urlencode(params)}',
            timeout=self.timeout,
        )

    def verify_token(self, token) -> bool:
        """True only when /me accepts the token."""
        if not is_usable_token(token):
            return False
        logger.info('Verifying Facebook token...')
        try:
            with self._get('me', {'access_token': token}) as resp:
                ok = 200 <= resp.status < 300
        except urllib.error.HTTPError as e:
            body = _decode_error_body(e)
            logger.error('Token verification failed (HTTP %s): %s', e.code, _error_message(body))
            return False
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            logger.error('Token verification failed: %s', e)
            return False
        if ok:
            logger.info('Facebook token is valid')
        return ok

    def build_search_params(self, token, query, search_type=None, country=None,
                            limit=None, ad_active_status=None, ad_type=None):
        query = (query or '').strip()
        if not query:
            raise ValidationError('Search query is required')

        if search_type == 'advertiser':
            logger.warning('Advertiser name search is not supported by ads_archive, using keyword search')
        api_search_type = SEARCH_TYPES.get(search_type or 'keyword', 'KEYWORD_UNORDERED')

        status = (ad_active_status or 'ALL').upper()
        if status not in AD_ACTIVE_STATUSES:
            raise ValidationError(f'Invalid adActiveStatus: {ad_active_status}')
        kind = (ad_type or 'ALL').upper()
        if kind not in AD_TYPES:
            raise ValidationError(f'Invalid adType: {ad_type}')

        params = {
            'access_token': token,
            'ad_type': kind,
            'ad_active_status': status,
            'ad_reached_countries': (country or self.default_country).upper(),
            'search_terms': query,
            'search_type': api_search_type,
            'fields': AD_FIELDS,
        }
        if self.languages:
            params['languages'] = self.languages
        if limit not in (None, ''):
            try:
                n = int(limit)
            except (TypeError, ValueError):
                raise ValidationError(f'Invalid limit: {limit}')
            if n < 1:
                raise ValidationError(f'Invalid limit: {limit}')
            params['limit'] = n
        return params

    def search_ads(self, token, query, **filters):
        """Run one ads_archive search and return the upstream JSON body as-is."""
        params = self.build_search_params(token, query, **filters)
        if not is_usable_token(token):
            raise CredentialError()

        url = f'{self.api_url}/ads_archive?{urllib.parse.urlencode(params)}'
        logger.info('Calling Facebook API: %s', _mask(url, token))
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:
                payload = resp.read()
        except urllib.error.HTTPError as e:
            details = _decode_error_body(e)
            logger.error('Facebook API error %s: %s', e.code, details)
            raise UpstreamError(f'Facebook API returned {e.code}', status=e.code, details=details)
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            logger.error('Facebook API unreachable: %s', e)
            raise UpstreamError(str(e))

        try:
            data = json.loads(payload)
        except ValueError:
            raise UpstreamError('Facebook API returned a non-JSON body', status=200,
                                details=payload.decode('utf-8', errors='replace')[:2000])
        logger.info('Facebook API returned %d ads', len(data.get('data', [])) if isinstance(data, dict) else 0)
        return data
