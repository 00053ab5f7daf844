"""Mock Cookie search responses for testing."""

from __future__ import annotations

TWEET_BULLISH = {
    "authorUsername": "degen_alpha",
    "createdAt": "2026-10-19T11:30:00Z",
    "engagementsCount": 420,
    "impressionsCount": 15000,
    "isQuote": False,
    "isReply": False,
    "likesCount": 100,
    "quotesCount": 4,
    "repliesCount": 12,
    "retweetsCount": 20,
    "smartEngagementPoints": 6,
    "text": "$BOAR just broke out\nvolume is insane",
    "matchingScore": 0.92,
}

TWEET_QUIET = {
    "authorUsername": "lurker",
    "createdAt": "2026-10-17T08:00:00Z",
    "engagementsCount": 1,
    "impressionsCount": 40,
    "isQuote": False,
    "isReply": True,
    "likesCount": 1,
    "quotesCount": 0,
    "repliesCount": 0,
    "retweetsCount": 0,
    "smartEngagementPoints": 0,
    "text": "anyone holding BOAR?",
    "matchingScore": 0.4,
}

SEARCH_OK = {"ok": [TWEET_BULLISH, TWEET_QUIET], "success": True, "error": None}

SEARCH_EMPTY = {"ok": None, "success": False, "error": "no results"}
