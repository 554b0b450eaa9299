# lbgate

`lbgate` is a small asyncio HTTP load balancer built on aiohttp. Every
incoming request goes through two steps:

1. **Rate limiting per client IP.** A token bucket for each client
   address is kept in Redis. The bucket logic runs as Lua scripts in
   Redis. When the allow script does not return `1`, the client gets
   `429 Too Many Requests` with a JSON body:

   ```json
   {"message":"Too many request from your IP","status":429}
   ```

   If Redis fails while a request is checked, the request is denied
   with the same 429 reply. A background task runs the refill script
   over every `bucket:*` key at a fixed interval.

2. **Round-robin routing.** The request is proxied to the next backend
   that is alive. Hop-by-hop headers are dropped and the client address
   is appended to `X-Forwarded-For`. At a fixed interval the balancer
   sends a `GET` to every backend. A `200` answer marks the backend
   alive. Any other answer or a connection error marks it down. A
   backend that fails while a request is proxied is also marked down,
   and the client gets `503 Backend unavailable`. When no backend is
   alive, the client gets `503 Service unavailable: no alive backend`.

If the client address cannot be read, the reply is a JSON `500` with
the message `internal server error`.

## Installation

```
pip install lbgate
```

You need a running Redis server that the balancer can reach.

## Configuration

The balancer reads its settings from a directory, `configs` by default.
It uses the first of `config.json`, `config.yaml` or `config.yml` that it
finds there. Keys match without regard to case, `_` or `-`, so
`healthCheckTime` and `health_check_time` mean the same thing.

```yaml
http:
  port: "8080"
  maxHeaderMegabytes: 1
  readTimeout: 10s
  writeTimeout: 10s

balancer:
  backends:
    - "http://localhost:9001"
    - "http://localhost:9002"
    - "http://localhost:9003"
  healthCheckTime: 10     # seconds between health checks

limiter:
  capacity: 10            # default bucket size per client
  ratePerSec: 5           # default refill rate per client
  ttl: 60                 # passed to the Lua scripts
  refillTime: 1           # seconds between refill passes

redis:
  host: "localhost"
  port: "6379"
```

Durations are read by `parse_duration`. A bare number is a number of
seconds. Text such as `"1m30s"` or `"300ms"` is also accepted, with the
units `ns`, `us`, `ms`, `s`, `m` and `h`. `healthCheckTime` and
`refillTime` must be positive.

The HTTP server uses only `http.port`. The header limit and the read
and write timeouts are loaded into `HTTPConfig`, but the server does not
apply them. Backend addresses that cannot be parsed are logged and left
out of the pool.

If the configuration file is missing or a value cannot be read, loading
fails with `ConfigError`. If Redis does not answer a ping at start-up,
`RedisConnectionError` is raised.

### Rate-limiter scripts

The package does not ship the Lua scripts for the token bucket. You must
put two files of your own next to the configuration file:

- `allow_script.lua`: called with the keys `bucket:<ip>` and
  `config:<ip>`. Its arguments are the current Unix time, the TTL, the
  default capacity and the default rate. It must return `1` to let the
  request through.
- `refill_script.lua`: called with the keys `bucket:<ip>` and
  `config:<ip>`. Its arguments are the current Unix time and the TTL.

If either file cannot be read, start-up fails with `ConfigError`.

## Running

Start the balancer:

```
lbgate
lbgate --config-dir path/to/configs
```

It logs to standard error and exits with status 1 on a configuration or
Redis connection error. It stops gracefully on `SIGINT` or `SIGTERM`. It
cancels the health-check and refill tasks first and then closes the HTTP
server. The server listens on every interface at the configured port,
on IPv6 and IPv4 where the system supports both.

For local experiments there is a trivial backend. It answers every
request, on any path and method, with `Hello from backend on port
<PORT>`. It reads its port from the `PORT` environment variable and
exits with status 1 if the variable is not a number:

```
PORT=9001 lbgate-demo-backend
PORT=9002 lbgate-demo-backend
PORT=9003 lbgate-demo-backend
```

## Using it from Python

The same parts can be wired together in code:

```python
import asyncio

from lbgate.config import load_config
from lbgate.handler import Handler
from lbgate.repository import connect_redis, make_repository
from lbgate.server import Server
from lbgate.services import build_services


async def serve(stop: asyncio.Event) -> None:
    config = load_config("configs")
    client = await connect_redis(config.redis)
    services = build_services(make_repository(client), config)
    server = Server(config.http, Handler(services))
    services.start()
    await server.start()
    try:
        await stop.wait()
    finally:
        await services.stop()
        await server.stop()
        await client.connection_pool.disconnect()
```

`lbgate.app.run(config_dir)` does the same and waits for `SIGINT` or
`SIGTERM`.

The main building blocks are:

- `lbgate.config`: `Config` and its sections (`HTTPConfig`,
  `BalancerConfig`, `LimiterConfig`, `RedisConfig`), plus `load_config`,
  `parse_duration` and `ConfigError`.
- `lbgate.backends.Backend`: one upstream URL and its `alive` flag.
- `lbgate.roundrobin.RoundRobin`: `next_backend(backends)` returns the
  next alive backend in turn, or `None`.
- `lbgate.balancer.LoadBalancer`: `route(request)`, `alive_backends()`,
  `health_check()` and `health_check_loop(interval_seconds)`. A strategy
  and an aiohttp client session can be passed in.
- `lbgate.ratelimiter.TokenBucket`: `allow(ip)`, `refill()` and
  `refill_loop(refill_seconds)`. It takes a repository, a
  `LimiterConfig` and the texts of the two scripts.
- `lbgate.repository`: the `RateLimiterRepository` protocol and its
  Redis implementation `RedisLimiterRepository`, plus `Repository`,
  `make_repository`, `connect_redis` and `RedisConnectionError`.
- `lbgate.services`: `Services` holds the limiter and the balancer, and
  `start()` and `stop()` run their background loops. `build_services`
  builds them from a `Config`.
- `lbgate.handler`: `Handler` is the request entry point. It combines
  the limiter and the balancer. The module also has `client_ip` and
  `json_response`.
- `lbgate.server.Server`: `start()` and `stop()` control the HTTP
  listener. `port` gives the port that was actually bound.
- `lbgate.demo_backend`: `make_app(port)` builds the demo backend
  application.

## Tests

```
pip install "lbgate[test]"
pytest
```