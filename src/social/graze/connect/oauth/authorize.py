from typing import Iterable
from urllib.parse import urlparse, urlencode, parse_qsl, urlunparse

from social.graze.connect.oauth.pkce import PKCE_CHALLENGE_METHOD


def build_authorize_url(
    authorize_endpoint: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    scopes: Iterable[str],
) -> str:
    """
    Compose the provider consent URL for the authorization code grant with PKCE.

    The state record for ``state`` must already be stored before this URL is shown to the
    user. Query parameters already present on ``authorize_endpoint`` are kept.
    """
    parsed_authorize_endpoint = urlparse(authorize_endpoint)
    query = dict(parse_qsl(parsed_authorize_endpoint.query))
    query.update(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": " ".join(scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": PKCE_CHALLENGE_METHOD,
        }
    )
    parsed_authorize_endpoint = parsed_authorize_endpoint._replace(
        query=urlencode(query)
    )
    return str(urlunparse(parsed_authorize_endpoint))
