"""
Sample page fixtures for testing.
"""

# Homepage of the sample site: nav, hero CTA, one low-contrast button
HOMEPAGE_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Acme Analytics - Dashboards for growing teams</title>
    <meta name="description" content="Acme Analytics gives growing teams live dashboards.">
    <link rel="icon" href="/favicon.ico">
    <style>
        body { color: #333333; font-family: Inter, sans-serif; }
        .btn { background: #0066cc; color: #ffffff; }
    </style>
</head>
<body>
    <nav>
        <a href="/">Home</a>
        <a href="/pricing">Pricing</a>
        <a href="/about">About</a>
        <a href="#top">Back to top</a>
        <a href="mailto:hello@acme.test">Email us</a>
        <a href="https://twitter.com/acme">Twitter</a>
    </nav>
    <section class="hero">
        <h1>Dashboards your team will actually use</h1>
        <p>Connect your data in minutes and share live reports with everyone.</p>
        <a class="btn" href="/pricing">Get started today</a>
        <button style="color: #777777; background-color: #888888">Watch demo</button>
    </section>
    <img src="/hero.png" alt="Dashboard screenshot">
</body>
</html>
"""

# Pricing page: a signup form, no links back to the homepage
PRICING_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Pricing - Acme Analytics</title>
</head>
<body>
    <h1>Simple pricing</h1>
    <p>Start free, upgrade when your team grows.</p>
    <form action="/signup" method="post">
        <label for="email">Work email</label>
        <input id="email" type="email" name="email" required>
        <input type="text" name="company" placeholder="Company">
        <button type="submit">Start free trial</button>
    </form>
</body>
</html>
"""

ABOUT_HTML = """
<!DOCTYPE html>
<html lang="en">
<head><title>About us - Acme Analytics</title></head>
<body>
    <h1>About Acme</h1>
    <p>We are a small team building analytics tools since 2015.</p>
</body>
</html>
"""

# Trust signals: phone, email, payment and security badges, reviews
TRUST_PAGE_HTML = """
<html>
<body>
    <header><p>Call us: 555-123-4567 or write to sales@acme.test</p></header>
    <div class="customer-reviews"><p>Five stars from 300 teams.</p></div>
    <img src="/visa.png" alt="Visa accepted">
    <img src="/ssl.png" alt="Secure checkout">
</body>
</html>
"""

# Long form that should read as high friction
LONG_FORM_HTML = """
<html>
<body>
    <form>
        <label>First name <input type="text" name="first"></label>
        <label>Last name <input type="text" name="last"></label>
        <input type="email" name="email" aria-label="Email">
        <input type="tel" name="phone" required>
        <input type="text" name="company" required>
        <input type="text" name="title">
        <select name="size"><option>1-10</option></select>
        <textarea name="notes"></textarea>
        <input type="hidden" name="token" value="abc">
        <input type="submit" value="Request a demo">
    </form>
</body>
</html>
"""

CTA_HEAVY_HTML = """
<html>
<body>
    <button>Buy</button>
    <button>Try</button>
    <a class="btn" href="/a">Go</a>
    <a class="button" href="/b">Now</a>
    <input type="submit" value="Order">
</body>
</html>
"""


def sample_site(base_url: str = "https://example.com") -> dict[str, str]:
    """Canned HTML keyed by URL for a three-page site."""
    return {
        f"{base_url}/": HOMEPAGE_HTML,
        f"{base_url}/pricing": PRICING_HTML,
        f"{base_url}/about": ABOUT_HTML,
    }
