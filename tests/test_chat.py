import unittest

from tubeshield.chat import DEFAULT_REPLY, PROGRAMMING_RULE, RULES, YOUTUBE_RULE, Rule, normalize, respond


class TestRespond(unittest.TestCase):

    def test_youtube_keywords(self):
        self.assertEqual(respond("YouTubeって何？"), YOUTUBE_RULE.reply)
        self.assertEqual(respond("この動画について"), YOUTUBE_RULE.reply)

    def test_youtube_refinements(self):
        self.assertIn("トレンドタブ", respond("YouTubeでおすすめの動画は？"))
        self.assertIn("DaVinci Resolve", respond("動画の編集のコツ"))
        self.assertIn("1,000人", respond("YouTubeで稼ぐには"))

    def test_programming_and_refinement(self):
        self.assertEqual(respond("プログラミングが好き"), PROGRAMMING_RULE.reply)
        self.assertIn("Progate", respond("プログラミングの学習方法は？"))

    def test_rule_order_decides_overlaps(self):
        # "動画" wins over the trailing question mark
        self.assertEqual(respond("動画？"), YOUTUBE_RULE.reply)

    def test_other_topics(self):
        self.assertIn("AI", respond("AIについて"))
        self.assertIn("アシスタント", respond("Hello"))
        self.assertIn("どういたしまして", respond("ありがとう"))
        self.assertIn("天気情報", respond("明日の天気"))
        self.assertIn("NHK", respond("ニュースを見たい"))
        self.assertIn("基本操作", respond("このアプリの使い方を教えて"))
        self.assertIn("お答えできる分野", respond("これは何？"))

    def test_templates_keep_the_original_wording(self):
        self.assertTrue(respond("hello").startswith("こんにちは！透明YouTube-unblockerのAIアシスタントです。"))
        self.assertTrue(DEFAULT_REPLY.startswith("こんにちは！透明YouTube-unblockerのAIアシスタントです。"))
        self.assertIn("💬 AI機能：\n• チャットページで質問可能", respond("help"))
        self.assertIn("最新のWeb技術（React、TypeScript、Express.js）で構築されています。", respond("コードを書く"))

    def test_default_reply(self):
        self.assertEqual(respond("zzz"), DEFAULT_REPLY)
        self.assertEqual(respond(""), DEFAULT_REPLY)

    def test_matching_is_case_insensitive(self):
        self.assertEqual(respond("YOUTUBE"), respond("youtube"))
        self.assertEqual(normalize("  HeLLo "), "hello")

    def test_deterministic(self):
        for message in ("YouTube", "プログラミング", "zzz", "help"):
            self.assertEqual(respond(message), respond(message))

    def test_custom_rule_table(self):
        rules = [Rule(("ping",), "pong")]
        self.assertEqual(respond("PING?", rules), "pong")
        self.assertEqual(respond("other", rules), DEFAULT_REPLY)

    def test_every_rule_has_keywords_and_reply(self):
        for rule in RULES:
            self.assertTrue(rule.keywords)
            self.assertTrue(rule.reply)


if __name__ == "__main__":
    unittest.main()
