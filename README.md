# errbeacon

Building blocks for sending error-report envelopes to a collection service
over HTTP. The package uses only the standard library.

## Modules

### `errbeacon.ratelimit`

`RateLimiter` records how long the server has told the client to back off.
Limits are kept per `RateLimitingCategory` (`ANY`, `ERROR`, `SESSION`,
`TRANSACTION`).

- `update_from_retry_after(header)` reads a `Retry-After` value, given either
  as a number of seconds (rounded up) or as an HTTP date. It sets the global
  limit.
- `update_from_sentry_header(header)` reads an `X-Sentry-Rate-Limits` value,
  a comma separated list of `<seconds>:<category>;...:<scope>[:<reason>]`
  groups. An empty category list sets the global limit. The `error`,
  `session` and `transaction` categories are recognised. Any group that does
  not parse is skipped.
- `is_disabled(category)` returns the seconds left as a float, or `None` when
  sending is allowed. A global limit applies to every category.

`RateLimiter(clock=...)` takes a function that returns the current POSIX
time. It defaults to `time.time`.

### `errbeacon.worker`

`TransportWorker(send, *, limiter=None, queue_size=30, name=...)` runs
`send(envelope, limiter)` for each queued envelope on a daemon thread.

- While the limiter reports a limit for `ANY`, envelopes are dropped rather
  than sent.
- Exceptions raised by `send` are logged at debug level and then ignored.
- `send(envelope)` queues an envelope, waiting for room in the queue.
- `flush(timeout)` returns `True` when everything queued before it has been
  handled within `timeout` seconds.
- `shutdown()` stops the thread and discards anything still queued. Using
  the worker as a context manager calls `shutdown()` on exit.

### `errbeacon.http`

`HttpTransport(url, auth=None, *, user_agent=None, http_proxy=None,
https_proxy=None, timeout=30.0, limiter=None)` POSTs envelopes to `url`
from a `TransportWorker`.

- Only `http` and `https` URLs are accepted; any other scheme raises
  `ValueError`.
- Requests carry `Content-Type: application/json`, plus `X-Sentry-Auth` and
  `User-Agent` when they are given.
- For an `https` URL the `https_proxy` is used when set; otherwise the
  `http_proxy` is used.
- An envelope may be `bytes`, `str` (sent as UTF-8), or an object with a
  `to_bytes()` method.
- Rate-limit headers in a response, including an error response, are
  applied to the limiter.

Methods:

- `send_envelope(envelope)` queues the envelope for delivery.
- `flush(timeout)` waits up to `timeout` seconds for queued envelopes to be
  handled.
- `shutdown(timeout)` flushes and then stops the worker. It returns whether
  the flush finished in time.

`apply_rate_limit_headers(limiter, headers)` feeds `Retry-After` and
`X-Sentry-Rate-Limits` into a limiter. `headers` may be a mapping or an
iterable of pairs. Header names are matched case-insensitively, and when a
header appears more than once its last value is used.

### `errbeacon.defaults`

`ClientOptions` holds the following fields:

- `dsn`
- `release`
- `environment`
- `http_proxy`
- `https_proxy`
- `transport` (a factory taking the options)
- `user_agent`

`apply_defaults(options=None, environ=None)` returns a copy with unset
values filled in. It reads from `environ`, which defaults to `os.environ`:

| Option | Source |
| --- | --- |
| `transport` | a factory that builds an `HttpTransport` for the DSN's envelope endpoint; it raises `ValueError` when there is no DSN |
| `dsn` | `SENTRY_DSN`; an invalid DSN is ignored |
| `release` | `SENTRY_RELEASE` |
| `environment` | `SENTRY_ENVIRONMENT`, otherwise `"development"`, or `"production"` when Python runs with `-O` |
| `http_proxy` | `HTTP_PROXY`, then `http_proxy` |
| `https_proxy` | `HTTPS_PROXY`, then `https_proxy`, then the HTTP proxy |

## Example

```python
from errbeacon.ratelimit import RateLimiter, RateLimitingCategory

limiter = RateLimiter()
limiter.update_from_sentry_header("120:error:project:reason, 60:session:foo")
print(limiter.is_disabled(RateLimitingCategory.ERROR))        # about 120.0
print(limiter.is_disabled(RateLimitingCategory.TRANSACTION))  # None
```

```python
from errbeacon.defaults import ClientOptions, apply_defaults

options = apply_defaults(ClientOptions(), {"SENTRY_ENVIRONMENT": "staging"})
print(options.environment)  # staging
```

## What it does not do

errbeacon only delivers envelopes that you have already built. It does not:

- capture exceptions or messages, or build events or envelopes;
- keep scopes, breadcrumbs or sessions;
- offer a client object or any integrations;
- provide a command-line tool.

## Running the tests

```
pip install -e ".[test]"
pytest
```