import httpx
import pytest

from oauthprobe.utils.http import HttpSession

AUTH_URL = "https://idp.example/authorize?client_id=x&redirect_uri=https://app.example/cb&state=s1"


def make_session(handler, requests=None):
    """Build an HttpSession whose traffic goes to ``handler`` instead of the network."""

    def recording_handler(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    return HttpSession(transport=httpx.MockTransport(recording_handler))


@pytest.fixture
def auth_url():
    return AUTH_URL
