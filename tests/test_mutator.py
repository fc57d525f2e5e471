import pytest

from oauthprobe import mutator
from oauthprobe.mutator import MalformedURLError


def test_protocol_relative_keeps_target_path():
    assert mutator.protocol_relative("https://auth.example.com/cb") == "//attacker.com/cb"


def test_http_downgrade():
    assert mutator.http_downgrade("https://auth.example.com/cb") == "http://auth.example.com/cb"
    assert mutator.http_downgrade("http://auth.example.com/cb") == "http://auth.example.com/cb"


def test_dot_escape_host_merges_second_to_last_label():
    assert mutator.dot_escape_host("www.oauth.target.com") == "www.oauthXtarget.com"
    assert mutator.dot_escape_host("auth.target.com") == "authXtarget.com"
    assert mutator.dot_escape_host("target.com") == "targetXcom"


def test_dot_escape_host_leaves_single_labels_and_ips():
    assert mutator.dot_escape_host("localhost") == "localhost"
    assert mutator.dot_escape_host("10.0.0.1") == "10.0.0.1"


def test_dot_escape_uri_keeps_port_and_path():
    assert mutator.dot_escape("https://auth.target.com:8443/cb?x=1", char="Z") == "https://authZtarget.com:8443/cb?x=1"


def test_attacker_variants():
    uri = "https://auth.example.com/cb"
    assert mutator.subdomain_attack(uri) == "https://auth.example.com.attacker.com"
    assert mutator.backslash_at_confusion(uri) == "https://attacker.com\\@auth.example.com/cb"
    assert mutator.query_at_confusion(uri) == "https://attacker.com?@auth.example.com/cb"
    assert mutator.crlf_injection(uri) == "https://attacker.com%0d%0aauth.example.com/cb"
    assert mutator.different_domain(uri) == "https://example.com"
    assert mutator.different_domain(uri, destination="https://probe.test") == "https://probe.test"


def test_path_variants():
    uri = "https://auth.example.com/cb"
    assert mutator.relative_path(uri) == "https://auth.example.com/cb/../redirect"
    assert mutator.relative_path("https://auth.example.com/") == "https://auth.example.com//../redirect"
    assert mutator.query_append(uri) == "https://auth.example.com/cb?"


def test_relative_path_keeps_trailing_slash():
    assert mutator.relative_path("https://app.example/cb/") == "https://app.example/cb//../redirect"


def test_bare_origin_uses_root_path():
    uri = "https://app.example"
    assert mutator.protocol_relative(uri) == "//attacker.com/"
    assert mutator.backslash_at_confusion(uri) == "https://attacker.com\\@app.example/"
    assert mutator.query_at_confusion(uri) == "https://attacker.com?@app.example/"
    assert mutator.crlf_injection(uri) == "https://attacker.com%0d%0aapp.example/"
    assert mutator.relative_path(uri) == "https://app.example//../redirect"


def test_replace_query_param_leaves_other_segments_untouched():
    url = "https://idp.example/authorize?client_id=a%20b&redirect_uri=https%3A%2F%2Fapp%2Fcb&state=s1"

    result = mutator.replace_query_param(url, 'redirect_uri', 'https://example.com')

    assert result == "https://idp.example/authorize?client_id=a%20b&redirect_uri=https%3A%2F%2Fexample.com&state=s1"


def test_replace_query_param_appends_missing_and_drops_duplicates():
    assert mutator.replace_query_param("https://idp.example/a?x=1", 'prompt', 'none') == \
        "https://idp.example/a?x=1&prompt=none"
    assert mutator.replace_query_param("https://idp.example/a?p=1&x=2&p=3", 'p', 'v') == \
        "https://idp.example/a?p=v&x=2"


def test_replace_query_param_encodes_space_as_plus():
    result = mutator.replace_query_param("https://idp.example/a?response_type=code", 'response_type', 'code id_token')
    assert result == "https://idp.example/a?response_type=code+id_token"
    assert mutator.get_query_param(result, 'response_type') == 'code id_token'


def test_remove_query_param():
    assert mutator.remove_query_param("https://idp.example/a?state=abc&client_id=x", 'state') == \
        "https://idp.example/a?client_id=x"
    assert mutator.remove_query_param("https://idp.example/a?state=abc", 'state') == "https://idp.example/a"


def test_get_query_param():
    url = "https://idp.example/a?redirect_uri=https%3A%2F%2Fapp.example%2Fcb&state="
    assert mutator.get_query_param(url, 'redirect_uri') == "https://app.example/cb"
    assert mutator.get_query_param(url, 'state') == ""
    assert mutator.get_query_param(url, 'scope') is None


@pytest.mark.parametrize('url', [
    'not a url',
    'ftp://files.example/x',
    'http://[::1',
    'https://idp.example:99999/authorize',
    'https:///authorize',
    '',
    None,
])
def test_parse_authorization_url_rejects_malformed(url):
    with pytest.raises(MalformedURLError):
        mutator.parse_authorization_url(url)


def test_parse_authorization_url_accepts_http_and_https():
    assert mutator.parse_authorization_url("https://idp.example/authorize?a=1").hostname == "idp.example"
    assert mutator.parse_authorization_url("HTTP://idp.example:8080/").port == 8080
