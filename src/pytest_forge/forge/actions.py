"""Request building and expectation checks used by the runner."""

from collections.abc import Sized
from typing import TYPE_CHECKING

from pytest_forge.matchers import is_matcher
from pytest_forge.transport import HttpRequest, join_url, merge_headers
from pytest_forge.validators import (
    ContentValidator,
    Failure,
    HeaderValidator,
    SchemaValidator,
    ShapeValidator,
)
from pytest_forge.values import type_name

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pytest_forge.context import ContextManager
    from pytest_forge.models import ForgeSettings
    from pytest_forge.schema import ExpectAction, RequestAction
    from pytest_forge.transport import HttpResponse
    from pytest_forge.values import RuntimeValue


def build_request(action: 'RequestAction', context: 'ContextManager',
                  settings: 'ForgeSettings') -> HttpRequest:
    """Resolve a request action into a sendable request.

    Relative URLs are joined onto the configured base URL and default
    headers are merged under the step headers.
    """
    resolved = context.resolve({
        'url': action.url,
        'headers': action.headers,
        'query': action.query,
        'body': action.body,
    })

    return HttpRequest(
        url=join_url(settings.base_url, str(resolved['url'])),
        verb=action.verb,
        headers=merge_headers(settings.headers, resolved['headers']),
        query=resolved['query'],
        body=resolved['body'],
    )


def tagged(check: str, failures: 'Iterable[Failure]') -> list[Failure]:
    """Mark failures with the expectation they belong to."""
    return [
        failure.model_copy(update={'check': check})
        for failure in failures
    ]


def check_value(path: str, actual: 'RuntimeValue', expected: 'RuntimeValue',
                *, loose: bool = False) -> list[Failure]:
    """Check a single value against a literal or matcher.

    Args:
        path: Path reported on mismatch.
        actual: Value under test.
        expected: Literal or matcher.
        loose: Compare literals by their string form (status codes
            written as strings still match).

    Returns:
        Zero or one failure.
    """
    if is_matcher(expected):
        if expected.matches(actual):
            return []
        return [Failure(
            path=path,
            expected=expected.description,
            actual=actual,
            actual_type=type_name(actual),
            message=expected.failure_message,
        )]

    if loose and str(actual) == str(expected):
        return []

    if not loose and type_name(actual) == type_name(expected) and actual == expected:
        return []

    return [Failure(
        path=path,
        expected=expected,
        actual=actual,
        actual_type=type_name(actual),
        message=f'expected {expected!r}, got {actual!r}',
    )]


def check_size(body: 'RuntimeValue', expected: 'RuntimeValue') -> list[Failure]:
    """Check the length of a decoded body."""
    if not isinstance(body, Sized) or isinstance(body, (bytes, bool)):
        return [Failure(
            path='size',
            expected=expected,
            actual=body,
            actual_type=type_name(body),
            message=f'expected a sized body, got {type_name(body)}',
        )]

    return check_value('size', len(body), expected)


def check_expectation(action: 'ExpectAction', response: 'HttpResponse | None',
                      context: 'ContextManager') -> list[Failure]:
    """Run every declared check against a response.

    Only declared checks are evaluated and all of them run; nothing
    stops at the first mismatch.

    Args:
        action: Expectation to check.
        response: Most recent response, if any.
        context: Context used to resolve deferred expected values.

    Returns:
        Failures tagged with the check they come from.
    """
    if response is None:
        return [Failure(
            path='response',
            actual_type='missing',
            message='no response has been captured yet',
            check='response',
        )]

    failures: list[Failure] = []

    if action.status is not None:
        failures += tagged('status', check_value(
            'status', response.status, context.resolve(action.status), loose=True,
        ))

    if action.headers:
        failures += tagged('headers', HeaderValidator().validate(
            response.headers, context.resolve(action.headers),
        ))

    if (expectation := action.json_) is not None:
        body = response.body

        if expectation.size is not None:
            failures += tagged('size', check_size(body, context.resolve(expectation.size)))

        if expectation.schema_ is not None:
            failures += tagged('schema', SchemaValidator().validate(body, expectation.schema_))

        if expectation.shape is not None:
            failures += tagged('shape', ShapeValidator().validate(body, expectation.shape))

        if expectation.content is not None:
            failures += tagged('content', ContentValidator().validate(
                body, context.resolve(expectation.content),
            ))

    if action.raw is not None:
        failures += tagged('raw', check_value('raw', response.text, context.resolve(action.raw)))

    return failures
