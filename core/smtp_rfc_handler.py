# SMTP reply code categorization based on RFC 5321 & RFC 3463
# Decides whether a failed notification e-mail is retried or given up

import re
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from enum import Enum

logger = logging.getLogger(__name__)


class ResponseCategory(Enum):
    """SMTP Response Categories based on RFC 5321"""
    SUCCESS = "success"
    TEMP_FAIL = "temp_fail"
    PERM_FAIL = "perm_fail"
    UNKNOWN = "unknown"


@dataclass
class SMTPResponseCode:
    """RFC 5321 reply code definition"""
    code: str
    category: ResponseCategory
    description: str
    retry_after: Optional[int] = None  # seconds
    max_retries: int = 3


SMTP_CODES: Dict[str, SMTPResponseCode] = {
    '250': SMTPResponseCode('250', ResponseCategory.SUCCESS, 'Requested mail action okay, completed'),
    '251': SMTPResponseCode('251', ResponseCategory.SUCCESS, 'User not local; will forward'),

    # 4xx transient failures (RFC 5321 Section 4.2.2)
    '421': SMTPResponseCode('421', ResponseCategory.TEMP_FAIL, 'Service not available, closing channel', retry_after=300),
    '450': SMTPResponseCode('450', ResponseCategory.TEMP_FAIL, 'Mailbox unavailable', retry_after=900),
    '451': SMTPResponseCode('451', ResponseCategory.TEMP_FAIL, 'Local error in processing', retry_after=600),
    '452': SMTPResponseCode('452', ResponseCategory.TEMP_FAIL, 'Insufficient system storage', retry_after=1800),
    '454': SMTPResponseCode('454', ResponseCategory.TEMP_FAIL, 'TLS not available or temporary auth failure', retry_after=600),

    # 5xx permanent failures
    '530': SMTPResponseCode('530', ResponseCategory.PERM_FAIL, 'Authentication required'),
    '535': SMTPResponseCode('535', ResponseCategory.PERM_FAIL, 'Authentication credentials invalid'),
    '550': SMTPResponseCode('550', ResponseCategory.PERM_FAIL, 'Mailbox unavailable'),
    '551': SMTPResponseCode('551', ResponseCategory.PERM_FAIL, 'User not local'),
    '552': SMTPResponseCode('552', ResponseCategory.PERM_FAIL, 'Exceeded storage allocation'),
    '553': SMTPResponseCode('553', ResponseCategory.PERM_FAIL, 'Mailbox name not allowed'),
    '554': SMTPResponseCode('554', ResponseCategory.PERM_FAIL, 'Transaction failed'),
}


class SMTPResponseAnalyzer:
    """SMTP response analysis used by the notification task"""

    enhanced_status_pattern = re.compile(r'(\d)\.(\d+)\.(\d+)')

    def parse_response(self, smtp_response: str) -> Tuple[str, str, Optional[str]]:
        """
        Parse SMTP response line according to RFC 5321
        Returns: (response_code, message, enhanced_status_code)
        """
        if not smtp_response or len(smtp_response) < 3 or not smtp_response[:3].isdigit():
            return ('451', smtp_response or 'Invalid response format', None)

        response_code = smtp_response[:3]
        message = smtp_response[4:].strip() if len(smtp_response) > 4 else ''
        enhanced_match = self.enhanced_status_pattern.search(message)
        return (response_code, message, enhanced_match.group(0) if enhanced_match else None)

    def categorize_response(self, response_code: str) -> SMTPResponseCode:
        code_info = SMTP_CODES.get(response_code)
        if code_info:
            return code_info

        if response_code.startswith(('2', '3')):
            return SMTPResponseCode(response_code, ResponseCategory.SUCCESS, 'Unknown success code')
        if response_code.startswith('4'):
            return SMTPResponseCode(response_code, ResponseCategory.TEMP_FAIL,
                                    'Unknown temporary failure', retry_after=600)
        if response_code.startswith('5'):
            return SMTPResponseCode(response_code, ResponseCategory.PERM_FAIL, 'Unknown permanent failure')
        return SMTPResponseCode(response_code, ResponseCategory.UNKNOWN, 'Invalid response code format')

    def should_retry(self, response_code: str, attempt_count: int, max_retries: int = None) -> bool:
        """Only transient (4xx) failures are retried, up to the retry budget"""
        code_info = self.categorize_response(response_code)
        if code_info.category != ResponseCategory.TEMP_FAIL:
            return False
        limit = code_info.max_retries if max_retries is None else max_retries
        return attempt_count < limit

    def get_retry_delay(self, response_code: str, attempt_count: int) -> int:
        """Exponential backoff from the code's base delay, capped at 6 hours"""
        code_info = self.categorize_response(response_code)
        base_delay = code_info.retry_after or 600
        return min(base_delay * (2 ** max(attempt_count - 1, 0)), 21600)
