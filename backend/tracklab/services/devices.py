"""User-agent parsing into the device/browser/os axes used for targeting."""
from dataclasses import dataclass
from typing import Optional

from user_agents import parse as parse_user_agent


@dataclass(frozen=True)
class DeviceProfile:
    device: str
    browser: str
    os: str


def classify_device(family: Optional[str]) -> str:
    """
    Map a ua-parser device family onto PC / Tablet / SP / other.

    Order matters: desktop browsers report the family "Other", so "Other"
    means PC here rather than the generic bucket.
    """
    family = family or ""
    if family in ("Other", "Desktop"):
        return "PC"
    if "iPad" in family or "Tablet" in family:
        return "Tablet"
    if "iPhone" in family or "Android" in family or "Mobile" in family:
        return "SP"
    return "other"


def profile_user_agent(user_agent: Optional[str]) -> DeviceProfile:
    """Parse a User-Agent string; missing or garbled input degrades, never raises."""
    agent = parse_user_agent(user_agent or "")
    return DeviceProfile(
        device=classify_device(agent.device.family),
        browser=agent.browser.family or "Other",
        os=agent.os.family or "Other",
    )
