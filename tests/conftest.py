from __future__ import annotations

from datetime import datetime, timezone

import pytest

from collector.bootstrap import Settings, bootstrap
from collector.core.errors import reset_failure_counts

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
FIXED_NOW_ISO = "2024-06-01T12:00:00.000Z"


POSTS_HTML = """
<html lang="fr"><body>
<div class="scaffold-finite-scroll__content">

  <div class="feed-shared-update-v2" data-urn="urn:li:activity:7100000000000000001">
    <span class="update-components-actor__sub-description">2 sem. • Modifié</span>
    <time datetime="2024-03-15T10:00:00.000Z">15 mars</time>
    <div class="update-components-text">
      <span>Bonjour à tous, merci pour votre soutien avec cette équipe dans les projets</span>
    </div>
    <ul class="social-details-social-counts">
      <li class="social-details-social-counts__item">
        <button aria-label="12 réactions"><span>Jean et 11 autres</span></button>
      </li>
      <li class="social-details-social-counts__item social-details-social-counts__comments">
        <button aria-label="3 commentaires sur le post">3 commentaires</button>
      </li>
      <li class="social-details-social-counts__item">
        <button aria-label="2 republications">2 republications</button>
      </li>
    </ul>
    <span class="ca-entry-point__num-views">1 234 impressions</span>
  </div>

  <div class="feed-shared-update-v2">
    <a href="https://www.linkedin.com/feed/update/urn:li:activity:7100000000000000002/">Open post</a>
    <span class="update-components-actor__sub-description">3w • Edited</span>
    <div class="update-components-text">
      <span>Thanks to the team for this very exciting launch and for the support</span>
    </div>
    <ul>
      <li class="social-details-social-counts__item">45 reactions</li>
      <li class="social-details-social-counts__item">7 comments</li>
    </ul>
  </div>

  <div class="feed-shared-update-v2" data-urn="urn:li:activity:7100000000000000003">
    <span class="update-components-header__text-view">Reposted by Jean Dupont</span>
    <div class="update-components-text"><span>Great article about leadership</span></div>
    <button aria-label="99 reactions">99</button>
  </div>

  <div class="feed-shared-update-v2" data-urn="urn:li:share:555">
    <div class="update-components-text"><span>Sponsored content with no activity id</span></div>
    <button aria-label="5 réactions">5</button>
  </div>

  <div class="feed-shared-update-v2" data-urn="urn:li:activity:7100000000000000001">
    <div class="update-components-text"><span>Same post rendered twice</span></div>
  </div>

</div>
</body></html>
"""

DASHBOARD_HTML = """
<html lang="fr"><body>
<section class="pcd-analytic-view-items-container">
  <a href="https://www.linkedin.com/analytics/creator/content/">
    <p class="text-body-large-bold">1 234</p>
    <p>Impressions des posts</p>
    <span>7 derniers jours</span>
  </a>
  <a href="https://www.linkedin.com/analytics/creator/audience/">
    <p class="text-body-large-bold">567</p>
    <p>Abonnés</p>
  </a>
  <a href="https://www.linkedin.com/analytics/profile-views/">
    <p class="text-body-large-bold">89</p>
    <p>Vues du profil</p>
    <span>90 derniers jours</span>
  </a>
  <a href="https://www.linkedin.com/analytics/search-appearances/">
    <p class="text-body-large-bold">12</p>
    <p>Apparitions dans les recherches</p>
  </a>
</section>
</body></html>
"""


class RecordingSleep:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def failure_log(tmp_path):
    return str(tmp_path / "delivery_failures.log")


@pytest.fixture(autouse=True)
def _fresh_failure_registry():
    reset_failure_counts()
    yield
    reset_failure_counts()


@pytest.fixture
def settings(failure_log) -> Settings:
    return Settings(
        _env_file=None,
        webapp_url="https://collector.example.test/exec",
        secret="s3cret",
        company_id="c1",
        team_id="t1",
        timeout_ms=1_000,
        retries=3,
        retry_backoff_ms=1_000,
        retry_backoff_max_ms=10_000,
        debounce_ms=10,
        batch_size_max=10,
        batch_pacing_ms=250,
        kill_switch=False,
        delivery_failure_log=failure_log,
    )


@pytest.fixture
def app_ctx(settings):
    return bootstrap(settings, configure=False)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
