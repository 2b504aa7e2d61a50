"""
Rule Engine - Deterministic campaign checks.
Pattern and heuristic scoring over campaign text and structured fields.
Pure and synchronous: no I/O, no external calls.
"""

import re
from typing import List, Optional

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.models.campaign import Campaign
from campaign_moderation.models.signals import SignalResult


def _word_patterns(words: List[str]) -> List[re.Pattern]:
    return [re.compile(r'\b' + re.escape(w) + r'\b') for w in words]


class RuleEngine:
    """
    Fast deterministic scorer for campaigns.
    The score is a running maximum across matched heuristics; findings are
    appended in check order and never deduplicated.
    """

    BANNED_FINANCIAL_PHRASES = [
        'guaranteed returns', 'guaranteed return', 'double your money',
        'double your investment', 'send crypto to', 'limited time giveaway',
        'multi level marketing', 'mlm', 'pyramid scheme', 'get rich quick',
        'investment opportunity', 'financial freedom', 'passive income guaranteed',
        'no risk investment',
    ]

    PAYMENT_BYPASS_PATTERNS = [
        # UPI handles and identifiers
        r'\bupi\b',
        r'\b[\w.\-]{2,}@(?:upi|ybl|ibl|axl|apl|paytm|okaxis|oksbi|okhdfcbank|okicici)\b',
        # Wallets and crypto
        r'\b(?:paytm|gpay|google pay|phonepe|bitcoin|btc|ethereum)\b',
        r'\b(?:wallet address|wallet id|crypto wallet)\b',
        # Bank details
        r'\bifsc\b',
        r'\b[a-z]{4}0[a-z0-9]{6}\b',
        r'\b(?:account number|acct no|a/c no)\b',
        r'\b(?:bank transfer|direct payment)\b',
        # Messaging apps
        r'\b(?:whatsapp|telegram)\b',
        r'\b(?:t\.me|wa\.me)/\w+',
        # Phone numbers
        r'\b(?:phone|call|contact|mobile)\s*[:\-]?\s*\+?\d[\d \-]{8,}\d',
        r'\+\d{1,3}[ \-]?\d{10}\b',
        r'\b[6-9]\d{9}\b',
    ]

    MEDICAL_KEYWORDS = ['surgery', 'treatment', 'hospital', 'medical', 'cancer', 'tumor', 'disease']

    MEDICAL_VERIFICATION_PATTERNS = [
        r'hospital.*letter',
        r'doctor.*certificate',
        r'medical.*report',
        r'discharge summary',
        r'cost estimate from',
    ]

    IMPERSONATION_KEYWORDS = [
        'official', 'endorsed by', 'sponsored by', 'on behalf of',
        'government approved', 'celebrity', 'famous person',
    ]

    URGENCY_PHRASES = [
        'limited time', 'act now', 'hurry', 'urgent', 'emergency',
        'will expire', 'last chance', 'today only',
    ]

    # Same fragment of 10+ chars repeated three times in a row
    REPEATED_TEXT_PATTERN = r'(.{10,100})\1{2,}'

    def __init__(self, settings: Optional[ModerationSettings] = None):
        self.settings = settings or ModerationSettings()

        # Compile patterns once
        self.financial_regex = _word_patterns(self.BANNED_FINANCIAL_PHRASES)
        self.payment_regex = [re.compile(p) for p in self.PAYMENT_BYPASS_PATTERNS]
        self.medical_regex = _word_patterns(self.MEDICAL_KEYWORDS)
        self.verification_regex = [re.compile(p) for p in self.MEDICAL_VERIFICATION_PATTERNS]
        self.impersonation_regex = _word_patterns(self.IMPERSONATION_KEYWORDS)
        self.urgency_regex = _word_patterns(self.URGENCY_PHRASES)
        self.repeated_regex = re.compile(self.REPEATED_TEXT_PATTERN)

    def evaluate(self, campaign: Campaign) -> SignalResult:
        """Score a campaign. Total and deterministic."""
        findings: List[str] = []
        score = 0.0

        text = campaign.text.lower()
        ocr_text = " ".join(img.ocr_text or "" for img in campaign.images).lower()
        creator = campaign.creator
        settings = self.settings

        # 1. Financial scam language
        if self._any_match(self.financial_regex, text, ocr_text):
            score = max(score, 0.7)
            findings.append('Detected financial scam language (guaranteed returns, MLM, etc.)')

        # 2. Payment bypass, in text or in image text
        if self._any_match(self.payment_regex, text, ocr_text):
            score = max(score, 0.9)
            findings.append('Direct payment instructions found (bypassing platform fees)')

        # 3. Medical claims without verification
        if self._any_match(self.medical_regex, text) and not self._any_match(self.verification_regex, text):
            score = max(score, 0.4)
            findings.append('Medical fundraising without verification documents')

        # 4. New account with high goal
        if creator.account_age_days < settings.new_account_days and campaign.goal > settings.high_goal_threshold:
            score = max(score, 0.4)
            findings.append(
                f'New account (<{settings.new_account_days} days) requesting high amount '
                f'(>{settings.high_goal_threshold})'
            )

        # 5. Unverified email with high goal
        if not creator.verified_email and campaign.goal > settings.unverified_goal_threshold:
            score = max(score, 0.3)
            findings.append('Unverified email with high goal amount')

        # 6. Duplicate / repeated content
        if self._is_repetitive(text):
            score = max(score, 0.3)
            findings.append('Potential duplicate or spam content detected')

        # 7. Low quality
        if self._is_low_quality(text):
            score = max(score, 0.2)
            findings.append('Low quality content (too short or repetitive)')

        # 8. Impersonation without verified identity
        if self._any_match(self.impersonation_regex, text) and not creator.verified_identity:
            score = max(score, 0.5)
            findings.append('Potential impersonation without identity verification')

        # 9. Urgency / pressure
        if self._any_match(self.urgency_regex, text):
            score = max(score, 0.3)
            findings.append('High-pressure urgency tactics detected')

        return SignalResult(score=score, findings=findings)

    @staticmethod
    def _any_match(patterns: List[re.Pattern], *texts: str) -> bool:
        return any(p.search(t) for t in texts if t for p in patterns)

    def _is_repetitive(self, text: str) -> bool:
        if self.repeated_regex.search(text):
            return True

        # Identical consecutive lines
        lines = [line.strip() for line in text.splitlines()]
        return any(a and a == b for a, b in zip(lines, lines[1:]))

    def _is_low_quality(self, text: str) -> bool:
        words = text.split()
        if not words:
            return True
        unique_ratio = len(set(words)) / len(words)
        return len(words) < self.settings.min_word_count or unique_ratio < self.settings.min_unique_ratio
