import asyncio

from tender_harvester.config import ScrapingConfig
from tender_harvester.scrapers.rate_limiter import RateLimiter


def test_first_request_to_a_domain_is_not_delayed():
    limiter = RateLimiter(ScrapingConfig(request_delay=10.0))
    assert asyncio.run(limiter.respect_rate_limit("https://tenders.example.gov/list")) == 0.0


def test_repeat_request_waits_for_domain_delay():
    limiter = RateLimiter(ScrapingConfig(request_delay=0.05))

    async def run():
        await limiter.respect_rate_limit("https://tenders.example.gov/list")
        return await limiter.respect_rate_limit("https://tenders.example.gov/detail/1")

    assert asyncio.run(run()) > 0


def test_domains_are_paced_independently():
    limiter = RateLimiter(ScrapingConfig(request_delay=10.0))

    async def run():
        await limiter.respect_rate_limit("https://tenders.example.gov/list")
        return await limiter.respect_rate_limit("https://other.example.org/list")

    assert asyncio.run(run()) == 0.0


def test_debug_mode_stretches_delays():
    config = ScrapingConfig(request_delay=1.0, debug_slowdown=3.0)
    limiter = RateLimiter(config, debug=True)
    limiter.set_domain_delay("slow.example.gov", 2.0)

    assert limiter.slowdown == 3.0
    assert limiter.get_domain_delay("slow.example.gov") == 2.0
    assert limiter.get_domain_delay("fast.example.gov") == 1.0
    assert limiter._get_required_delay("slow.example.gov") == 6.0
    assert RateLimiter(config).slowdown == 1.0
