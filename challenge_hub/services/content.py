"""
Content page composer.

Turns challenge and assignment records into page payloads: which blocks
are shown, in which column, and how media URLs are embedded. Pure functions
only; fetching lives in services.public.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

from challenge_hub.models import Assignment, AssignmentUsage, Challenge, Client, Sprint
from challenge_hub.services.rich_text import has_text, render_rich

DEFAULT_BRAND_COLOR = "#3b82f6"
INSTRUCTIONS_PLACEHOLDER = "Complete the task described in the instructions"

_VIMEO_ID = re.compile(r"vimeo\.com/(\d+)")


class MediaProvider(str, Enum):
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    LOOM = "loom"
    MIRO = "miro"
    VIDEO = "video"  # native <video> element


def classify_media(url: str) -> MediaProvider:
    if "youtube.com" in url or "youtu.be" in url:
        return MediaProvider.YOUTUBE
    if "vimeo.com" in url:
        return MediaProvider.VIMEO
    if "loom.com" in url:
        return MediaProvider.LOOM
    if "miro.com" in url:
        return MediaProvider.MIRO
    return MediaProvider.VIDEO


def youtube_embed_url(url: str) -> str:
    video_id = ""
    if "youtube.com/watch" in url:
        try:
            video_id = parse_qs(urlsplit(url).query).get("v", [""])[0]
        except ValueError:
            video_id = ""
    elif "youtu.be/" in url:
        video_id = url.split("youtu.be/", 1)[1].split("?", 1)[0]
    elif "youtube.com/embed/" in url:
        video_id = url.split("youtube.com/embed/", 1)[1].split("?", 1)[0]
    return f"https://www.youtube.com/embed/{video_id}"


def vimeo_embed_url(url: str) -> str:
    match = _VIMEO_ID.search(url)
    return f"https://player.vimeo.com/video/{match.group(1) if match else ''}"


def loom_embed_url(url: str) -> str:
    return url.replace("/share/", "/embed/")


def miro_embed_url(url: str) -> str:
    if "/board/" in url:
        return url.replace("/board/", "/live-embed/")
    return url


def embed_url(url: str) -> str:
    """Embeddable form of a media URL; native videos pass through unchanged."""
    provider = classify_media(url)
    if provider == MediaProvider.YOUTUBE:
        return youtube_embed_url(url)
    if provider == MediaProvider.VIMEO:
        return vimeo_embed_url(url)
    if provider == MediaProvider.LOOM:
        return loom_embed_url(url)
    if provider == MediaProvider.MIRO:
        return miro_embed_url(url)
    return url


def media_type_for(url: Optional[str]) -> str:
    """The media_type recorded with media_play events: youtube, vimeo or video."""
    if not url:
        return MediaProvider.VIDEO.value
    provider = classify_media(url)
    if provider in (MediaProvider.YOUTUBE, MediaProvider.VIMEO):
        return provider.value
    return MediaProvider.VIDEO.value


@dataclass
class MediaEmbed:
    provider: MediaProvider
    source_url: str
    embed_url: str
    is_iframe: bool


def build_media_embed(url: str) -> MediaEmbed:
    provider = classify_media(url)
    return MediaEmbed(
        provider=provider,
        source_url=url,
        embed_url=embed_url(url),
        is_iframe=provider != MediaProvider.VIDEO,
    )


# --- Assignment page ------------------------------------------------------


class BlockKind(str, Enum):
    TITLE = "title"
    INSTRUCTIONS = "instructions"
    IMAGE = "image"
    MEDIA = "media"
    CONTENT = "content"
    PLACEHOLDER = "placeholder"


@dataclass
class ContentBlock:
    kind: BlockKind
    text: Optional[str] = None
    subtitle: Optional[str] = None
    html: Optional[str] = None
    url: Optional[str] = None
    media: Optional[MediaEmbed] = None


@dataclass
class AssignmentLayout:
    left: list[ContentBlock] = field(default_factory=list)
    right: list[ContentBlock] = field(default_factory=list)

    @property
    def two_column(self) -> bool:
        return bool(self.left) and bool(self.right)

    @property
    def blocks(self) -> list[ContentBlock]:
        return self.left + self.right


def compose_assignment_layout(assignment: Assignment) -> AssignmentLayout:
    """
    Decide which blocks an assignment page shows and where.

    Left column: title and instructions. Right column: the image (only when
    there is no media), the media embed and the body content. Body content
    moves to the left column when it is the only thing on the page, and a
    page with only instructions gets a placeholder on the right.
    """
    has_instructions = has_text(assignment.instructions_html, assignment.instructions)
    has_content = has_text(assignment.content_html, assignment.content)
    has_media = bool(assignment.media_url)
    has_visual = bool(assignment.visual_url)

    layout = AssignmentLayout()
    layout.left.append(
        ContentBlock(
            kind=BlockKind.TITLE,
            text=assignment.display_title,
            subtitle=assignment.subtitle,
        )
    )

    if has_instructions:
        layout.left.append(
            ContentBlock(
                kind=BlockKind.INSTRUCTIONS,
                html=render_rich(assignment.instructions_html, assignment.instructions),
            )
        )

    content_block = None
    if has_content:
        content_block = ContentBlock(
            kind=BlockKind.CONTENT,
            html=render_rich(assignment.content_html, assignment.content),
        )

    if content_block and not (has_instructions or has_visual or has_media):
        layout.left.append(content_block)
        return layout

    if has_visual and not has_media:
        layout.right.append(ContentBlock(kind=BlockKind.IMAGE, url=assignment.visual_url))
    if has_media:
        layout.right.append(
            ContentBlock(kind=BlockKind.MEDIA, media=build_media_embed(assignment.media_url or ""))
        )
    if content_block:
        layout.right.append(content_block)

    if not layout.right and has_instructions:
        layout.right.append(ContentBlock(kind=BlockKind.PLACEHOLDER, text=INSTRUCTIONS_PLACEHOLDER))

    return layout


# --- Challenge page -------------------------------------------------------


@dataclass
class AssignmentCard:
    index: int
    assignment_id: str
    title: str
    label: Optional[str]
    has_password: bool
    url: str
    sprint_id: Optional[str] = None


@dataclass
class SprintSummary:
    id: str
    name: str
    position: int
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    has_password: bool
    is_locked: bool = False


@dataclass
class ChallengePage:
    challenge_id: str
    client_id: str
    slug: str
    title: str
    client_name: Optional[str]
    client_logo_url: Optional[str]
    brand_color: str
    description_html: Optional[str]
    visual_url: Optional[str]
    support_info: Optional[str]
    contact_info: Optional[str]
    password_instructions: Optional[str]
    assignments: list[AssignmentCard]
    pending_count: int
    next_release_at: Optional[datetime]
    sprints: list[SprintSummary]
    labels: dict[str, str]


def challenge_title(challenge: Challenge, client: Optional[Client]) -> str:
    if challenge.show_public_title and challenge.public_title:
        return challenge.public_title
    if client is not None:
        return client.name
    return challenge.internal_name


def assignment_url(assignment_slug: str, challenge_slug: Optional[str] = None) -> str:
    if not challenge_slug:
        return f"/a/{assignment_slug}"
    return f"/a/{assignment_slug}?{urlencode({'from': challenge_slug})}"


def compose_challenge_page(
    challenge: Challenge,
    client: Optional[Client],
    released: list[tuple[AssignmentUsage, Assignment]],
    pending_count: int = 0,
    next_release_at: Optional[datetime] = None,
    sprints: Optional[list[Sprint]] = None,
    labels: Optional[dict[str, str]] = None,
    locked_sprint_ids: Optional[set[str]] = None,
) -> ChallengePage:
    """Build the challenge landing page from already-filtered, ordered usages."""
    cards = [
        AssignmentCard(
            index=index,
            assignment_id=assignment.id,
            title=assignment.display_title,
            label=usage.label,
            has_password=bool(assignment.password_hash),
            url=assignment_url(assignment.slug, challenge.slug),
            sprint_id=usage.sprint_id,
        )
        for index, (usage, assignment) in enumerate(released, start=1)
    ]

    return ChallengePage(
        challenge_id=challenge.id,
        client_id=challenge.client_id,
        slug=challenge.slug,
        title=challenge_title(challenge, client),
        client_name=client.name if client else None,
        client_logo_url=client.logo_url if client else None,
        brand_color=challenge.brand_color or DEFAULT_BRAND_COLOR,
        description_html=render_rich(challenge.description),
        visual_url=challenge.visual_url,
        support_info=challenge.support_info,
        contact_info=challenge.contact_info,
        password_instructions=challenge.password_instructions,
        assignments=cards,
        pending_count=pending_count,
        next_release_at=next_release_at,
        sprints=[
            SprintSummary(
                id=sprint.id,
                name=sprint.name,
                position=sprint.position,
                starts_at=sprint.starts_at,
                ends_at=sprint.ends_at,
                has_password=bool(sprint.password_hash),
                is_locked=sprint.id in (locked_sprint_ids or set()),
            )
            for sprint in sorted(sprints or [], key=lambda s: s.position)
        ],
        labels=dict(labels or {}),
    )
