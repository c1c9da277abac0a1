"""
Validation utilities for CVE Mirror
"""
import math
import re
import logging
from typing import Any, Dict, List, Mapping, Optional

from cvemirror.core.filters import SCORE_FIELDS, ValidatedQuery
from cvemirror.core.query import ALLOWED_LIMITS
from cvemirror.core.storage import SORTABLE_FIELDS
from cvemirror.utils.error_handler import FieldError, ValidationError

logger = logging.getLogger(__name__)

YEAR_PATTERN = re.compile(r'^\d{4}$')

# Calendar years whose whole UTC range is representable
MIN_YEAR = 1
MAX_YEAR = 9998

MAX_MODIFIED_LAST_DAYS = 36500

# OFFSET is bound as a signed 64-bit SQLite integer
SQLITE_MAX_INTEGER = 2 ** 63 - 1
MAX_PAGE = SQLITE_MAX_INTEGER // max(ALLOWED_LIMITS) + 1


def _first(value: Any) -> Any:
    # parse_qs hands back lists
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _clean(params: Mapping[str, Any], name: str) -> Optional[str]:
    """Blank or missing parameters count as absent"""
    value = _first(params.get(name))
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_number(text: str) -> Optional[float]:
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _parse_integer(text: str) -> Optional[int]:
    try:
        return int(text)
    except ValueError:
        pass
    # "2.0" and "1e3" are integers too, at float precision
    number = _parse_number(text)
    if number is None or not number.is_integer():
        return None
    return int(number)


def validate_query_params(params: Mapping[str, Any]) -> ValidatedQuery:
    """
    Validate raw query-string parameters

    Args:
        params: Mapping of parameter name to string (or list of strings)

    Returns:
        ValidatedQuery with typed values

    Raises:
        ValidationError: listing every offending field
    """
    errors: List[FieldError] = []
    values: Dict[str, Any] = {}

    cve_id = _clean(params, 'id')
    if cve_id is not None:
        values['id'] = cve_id

    keyword = _clean(params, 'keyword')
    if keyword is not None:
        values['keyword'] = keyword

    year = _clean(params, 'year')
    if year is not None:
        if not YEAR_PATTERN.match(year):
            errors.append(FieldError('year', 'year must be YYYY'))
        elif not MIN_YEAR <= int(year) <= MAX_YEAR:
            errors.append(FieldError('year', f'year must be between {MIN_YEAR:04d} and {MAX_YEAR}'))
        else:
            values['year'] = int(year)

    score_min = _clean(params, 'scoreMin')
    if score_min is not None:
        number = _parse_number(score_min)
        if number is None:
            errors.append(FieldError('scoreMin', 'scoreMin must be a number'))
        elif not 0 <= number <= 10:
            errors.append(FieldError('scoreMin', 'scoreMin must be between 0 and 10'))
        else:
            values['score_min'] = number

    score_ver = _clean(params, 'scoreVer')
    if score_ver is not None:
        if score_ver in SCORE_FIELDS:
            values['score_ver'] = score_ver
        else:
            errors.append(FieldError('scoreVer', 'scoreVer must be v2 or v3'))

    days = _clean(params, 'modifiedLastDays')
    if days is not None:
        number = _parse_integer(days)
        if number is None:
            errors.append(FieldError('modifiedLastDays', 'modifiedLastDays must be an integer'))
        elif number < 1:
            errors.append(FieldError('modifiedLastDays', 'modifiedLastDays must be at least 1'))
        elif number > MAX_MODIFIED_LAST_DAYS:
            errors.append(FieldError('modifiedLastDays',
                                     f'modifiedLastDays must be at most {MAX_MODIFIED_LAST_DAYS}'))
        else:
            values['modified_last_days'] = number

    page = _clean(params, 'page')
    if page is not None:
        number = _parse_integer(page)
        if number is None:
            errors.append(FieldError('page', 'page must be an integer'))
        elif number < 1:
            errors.append(FieldError('page', 'page must be at least 1'))
        elif number > MAX_PAGE:
            errors.append(FieldError('page', f'page must be at most {MAX_PAGE}'))
        else:
            values['page'] = number

    limit = _clean(params, 'limit')
    if limit is not None:
        number = _parse_integer(limit)
        if number is None:
            errors.append(FieldError('limit', 'limit must be an integer'))
        else:
            values['limit'] = number

    sort = _clean(params, 'sort')
    if sort is not None:
        field = sort[1:] if sort.startswith('-') else sort
        if field in SORTABLE_FIELDS:
            values['sort'] = sort
        else:
            errors.append(FieldError('sort', f"sort must be one of {', '.join(sorted(SORTABLE_FIELDS))}"))

    if errors:
        logger.debug(f"Rejected query parameters: {[e.field for e in errors]}")
        raise ValidationError(errors)

    return ValidatedQuery(**values)
