from nexus_sales.infrastructure.facebook import patterns


class TestExtractId:
    def test_permalink(self):
        url = "https://www.facebook.com/groups/42/permalink/123456789012/"
        assert patterns.extract_id(url) == "123456789012"

    def test_video(self):
        assert patterns.extract_id("https://www.facebook.com/page/videos/987654321/") == "987654321"

    def test_photo_fbid(self):
        assert patterns.extract_id("https://www.facebook.com/photo.php?fbid=55544433322&set=a.1") == "55544433322"

    def test_share_token(self):
        assert patterns.extract_id("https://www.facebook.com/share/p/AbC123xyz/") == "AbC123xyz"

    def test_embedded_json(self):
        assert patterns.extract_id('{"post_id":"31415926535"}') == "31415926535"

    def test_blank_input(self):
        assert patterns.extract_id("   ") == ""
        assert patterns.extract_id(None) == ""

    def test_no_match(self):
        assert patterns.extract_id("https://www.facebook.com/somepage/about") is None


class TestUrlRewriting:
    def test_www_to_mbasic(self):
        assert patterns.to_mbasic_url("https://www.facebook.com/x/posts/1") == "https://mbasic.facebook.com/x/posts/1"

    def test_bare_host_to_mbasic(self):
        assert patterns.to_mbasic_url("https://facebook.com/x") == "https://mbasic.facebook.com/x"

    def test_mbasic_untouched(self):
        url = "https://mbasic.facebook.com/x"
        assert patterns.to_mbasic_url(url) == url

    def test_alternative_urls_exclude_input(self):
        url = "https://www.facebook.com/a"
        alternatives = patterns.alternative_urls(url)
        assert url not in alternatives
        assert alternatives[0] == "https://m.facebook.com/a"
        assert len(alternatives) == len(set(alternatives))


class TestHighSuccess:
    def test_story_fbid_wins(self):
        assert patterns.match_high_success("permalink.php?story_fbid=123456&id=9") == "123456"

    def test_blacklisted_skipped(self):
        assert patterns.match_high_success("photo.php?fbid=409962623085609") == ""

    def test_own_user_id_skipped(self):
        assert patterns.match_high_success("photo.php?fbid=555555555", c_user="555555555") == ""

    def test_limit_restricts_patterns(self):
        # "/posts/" is far down the list
        text = "https://www.facebook.com/x/posts/12345678901"
        assert patterns.match_high_success(text, limit=3) == ""
        assert patterns.match_high_success(text) == "12345678901"


class TestExtractFromResponse:
    def test_final_url_query(self):
        final_url = "https://mbasic.facebook.com/story.php?story_fbid=987654321&id=1"
        assert patterns.extract_id_from_response(final_url, "<html></html>") == "987654321"

    def test_final_url_path(self):
        final_url = "https://mbasic.facebook.com/page/posts/1234567890"
        assert patterns.extract_id_from_response(final_url, "") == "1234567890"

    def test_priority_html(self):
        html = '<script>{"post_id":"222222222"}</script>'
        assert patterns.extract_id_from_response("https://mbasic.facebook.com/x", html) == "222222222"

    def test_long_number_skips_blacklist_and_users(self):
        html = "100041584152497 100012345678901 123456789012345"
        assert patterns.extract_id_from_response("https://mbasic.facebook.com/x", html) == "123456789012345"

    def test_long_number_confirmed_by_context(self):
        html = "123456789012345 story_fbid=987654321098765"
        # story_fbid is a priority pattern, so it resolves first
        assert patterns.extract_id_from_response("https://mbasic.facebook.com/x", html) == "987654321098765"

    def test_longest_fallback(self):
        html = "a 1234567890123 b 12345678901234 c 1234567890"
        assert patterns.extract_id_from_response("https://mbasic.facebook.com/x", html) == "12345678901234"

    def test_nothing_found(self):
        assert patterns.extract_id_from_response("https://mbasic.facebook.com/x", "<p>hello</p>") == ""

    def test_c_user_excluded(self):
        final_url = "https://mbasic.facebook.com/photo.php?fbid=61550000000001"
        assert patterns.extract_id_from_response(final_url, "", c_user="61550000000001") == ""
