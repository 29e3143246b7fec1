from datetime import timedelta

import pytest

from powerbrief.auth.dependencies import get_optional_user
from powerbrief.db.enums import BrandShareRoleEnum, BrandShareStatusEnum
from powerbrief.db.models import (
    AdDraft,
    BrandShare,
    BriefBatch,
    BriefConcept,
    ConceptComment,
    ShareActivity,
    utcnow,
)
from powerbrief.main import app
from powerbrief.routers import concepts as concepts_router
from powerbrief.services.email import EmailClient, EmailSendError

from conftest import OTHER_USER_ID, TEST_USER_ID

SHARE_ID = "share-123"

ASSET_GROUP = {
    "baseName": "hero",
    "aspectRatios": ["9x16", "1x1"],
    "assets": [
        {"name": "hero_9x16.mp4", "supabaseUrl": "https://cdn.example.com/hero_9x16.mp4", "type": "video"},
        {"name": "hero_1x1.png", "supabaseUrl": "https://cdn.example.com/hero_1x1.png", "type": "image"},
    ],
}


@pytest.fixture()
def batch(db_session, brand) -> BriefBatch:
    record = BriefBatch(
        brand_id=brand.id,
        user_id=TEST_USER_ID,
        name="June Batch",
        share_settings={SHARE_ID: {"is_editable": False, "expires_at": None}},
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture()
def concept(db_session, batch) -> BriefConcept:
    record = BriefConcept(
        brief_batch_id=batch.id,
        user_id=TEST_USER_ID,
        concept_title="Glow Routine",
        video_editor="Eddie",
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture()
def anonymous(api_client):
    app.dependency_overrides[get_optional_user] = lambda: None
    return api_client


class FakeEmailClient:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send(self, **kwargs):
        if self.error:
            raise self.error
        self.sent.append(kwargs)
        return "msg-1"


def test_brief_batch_and_concept_creation(api_client, brand):
    created = api_client.post("/brief-batches", json={"brandId": brand.id, "name": "July"})
    assert created.status_code == 201
    batch_id = created.json()["id"]

    first = api_client.post(f"/brief-batches/{batch_id}/concepts", json={"conceptTitle": "Hook A"})
    second = api_client.post(f"/brief-batches/{batch_id}/concepts", json={"conceptTitle": "Hook B"})
    assert first.json()["revision_count"] == 1
    assert second.json()["order_in_batch"] == 1

    listed = api_client.get(f"/brief-batches/{batch_id}/concepts").json()
    assert [item["concept_title"] for item in listed] == ["Hook A", "Hook B"]
    assert api_client.get("/brief-batches", params={"brandId": brand.id}).json()[0]["name"] == "July"


def test_share_brief_batch_adds_share_settings(api_client, db_session, batch):
    response = api_client.post(f"/brief-batches/{batch.id}/share", json={"email": "reviewer@example.com"})
    assert response.status_code == 201
    share_id = response.json()["shareId"]
    assert response.json()["shareUrl"].endswith(f"/public/brief/{share_id}")

    db_session.refresh(batch)
    assert batch.share_settings[share_id]["share_type"] == "email"
    assert SHARE_ID in batch.share_settings


def test_share_is_active_honours_expiry(batch):
    assert concepts_router.share_is_active(batch, SHARE_ID) is True
    assert concepts_router.share_is_active(batch, "unknown") is False
    assert concepts_router.share_is_active(batch, None) is False

    batch.share_settings = {SHARE_ID: {"expires_at": (utcnow() - timedelta(hours=1)).isoformat()}}
    assert concepts_router.share_is_active(batch, SHARE_ID) is False


def test_append_assets_marks_ready_for_review(anonymous, db_session, concept, monkeypatch):
    notified = []
    monkeypatch.setattr(
        concepts_router.slack, "notify", lambda brand, message, event=None: notified.append((event, message)) or True
    )

    response = anonymous.post(
        "/powerbrief/append-assets",
        json={"conceptId": concept.id, "assetGroups": [ASSET_GROUP], "shareId": SHARE_ID},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["newAssetsCount"] == 1
    assert body["totalAssetsCount"] == 1
    assert body["assetGroups"][0]["uploadedAt"]

    again = anonymous.post(
        "/powerbrief/append-assets",
        json={"conceptId": concept.id, "assetGroups": [ASSET_GROUP], "shareId": SHARE_ID},
    )
    assert again.json()["totalAssetsCount"] == 2

    db_session.refresh(concept)
    assert concept.asset_upload_status == "uploaded"
    assert concept.review_status == "ready_for_review"
    assert concept.status == "READY FOR REVIEW"
    assert notified[0][0] == "concept_submission"
    assert notified[0][1]["blocks"][1]["fields"][2]["text"] == "*Concept:*\nGlow Routine"


def test_append_assets_rejects_unknown_share(anonymous, concept):
    response = anonymous.post(
        "/powerbrief/append-assets",
        json={"conceptId": concept.id, "assetGroups": [ASSET_GROUP], "shareId": "nope"},
    )
    assert response.status_code == 403
    missing = anonymous.post("/powerbrief/append-assets", json={"conceptId": concept.id, "assetGroups": [ASSET_GROUP]})
    assert missing.status_code == 401


def test_send_to_ad_batch_creates_drafts(api_client, db_session, concept):
    concept.uploaded_assets = [ASSET_GROUP, {"baseName": "alt", "assets": []}]
    db_session.commit()

    response = api_client.post("/powerbrief/send-to-ad-batch", json={"conceptId": concept.id})
    assert response.status_code == 200
    body = response.json()
    assert body["totalDrafts"] == 2
    assert body["createdDrafts"][0]["name"] == "Glow Routine - hero"
    assert body["createdDrafts"][0]["assetCount"] == 2

    drafts = db_session.query(AdDraft).order_by(AdDraft.ad_name).all()
    hero = next(draft for draft in drafts if draft.ad_name.endswith("hero"))
    assert hero.primary_text == "Creative assets from PowerBrief concept: Glow Routine"
    assert hero.headline == "Glow Routine"
    assert hero.description == "Assets: 9x16, 1x1"
    assert {asset.type.value for asset in hero.assets} == {"video", "image"}
    alt = next(draft for draft in drafts if draft.ad_name.endswith("alt"))
    assert alt.description == "Assets: Multiple formats"

    db_session.refresh(concept)
    assert concept.asset_upload_status == "sent_to_ad_upload"


def test_send_to_ad_batch_without_assets(api_client, concept):
    response = api_client.post("/powerbrief/send-to-ad-batch", json={"conceptId": concept.id})
    assert response.status_code == 400


def test_comments_ordered_by_timestamp(api_client, concept):
    for timestamp, text in ((12.5, "later"), (3, "early")):
        response = api_client.post(
            "/concept-comments", json={"conceptId": concept.id, "timestamp": timestamp, "comment": f" {text} "}
        )
        assert response.status_code == 200

    comments = api_client.get("/concept-comments", params={"conceptId": concept.id}).json()["comments"]
    assert [item["comment_text"] for item in comments] == ["early", "later"]
    assert comments[0]["user_id"] == TEST_USER_ID
    assert comments[0]["author_email"] == "owner@example.com"


def test_comment_validation(api_client, concept):
    assert api_client.post("/concept-comments", json={"conceptId": concept.id, "comment": "hi"}).status_code == 400
    assert api_client.post(
        "/concept-comments", json={"conceptId": concept.id, "timestamp": 1, "comment": "   "}
    ).status_code == 400
    assert api_client.get("/concept-comments").status_code == 400


def test_anonymous_comment_through_share_link(anonymous, db_session, concept):
    response = anonymous.post(
        "/concept-comments",
        json={
            "conceptId": concept.id,
            "timestamp": 4,
            "comment": "Love the intro",
            "shareId": SHARE_ID,
            "commenterName": "Riley",
            "commenterEmail": "riley@example.com",
        },
    )
    assert response.status_code == 200
    comment = response.json()["comment"]
    assert comment["user_id"] is None
    assert comment["author_name"] == "Riley (riley@example.com)"

    denied = anonymous.post(
        "/concept-comments", json={"conceptId": concept.id, "timestamp": 4, "comment": "x", "shareId": "bad"}
    )
    assert denied.status_code == 403
    unauthenticated = anonymous.post("/concept-comments", json={"conceptId": concept.id, "timestamp": 4, "comment": "x"})
    assert unauthenticated.status_code == 401

    edited = anonymous.put(
        "/concept-comments", json={"commentId": comment["id"], "comment": "Love it", "shareId": SHARE_ID}
    )
    assert edited.json()["comment"]["comment_text"] == "Love it"
    assert anonymous.put("/concept-comments", json={"commentId": comment["id"], "comment": "x"}).status_code == 403


def test_comment_edit_requires_author(api_client, db_session, concept):
    foreign = ConceptComment(
        concept_id=concept.id,
        user_id=OTHER_USER_ID,
        author_name="Other",
        timestamp_seconds=1,
        comment_text="theirs",
    )
    db_session.add(foreign)
    db_session.commit()

    response = api_client.put("/concept-comments", json={"commentId": foreign.id, "comment": "mine now"})
    assert response.status_code == 403
    assert api_client.delete("/concept-comments", params={"commentId": foreign.id}).status_code == 403


def test_delete_comment_removes_replies(api_client, db_session, concept):
    parent = api_client.post("/concept-comments", json={"conceptId": concept.id, "timestamp": 1, "comment": "root"})
    parent_id = parent.json()["comment"]["id"]
    reply = api_client.post(
        "/concept-comments", json={"conceptId": concept.id, "timestamp": 1, "comment": "reply", "parentId": parent_id}
    )
    assert reply.status_code == 200

    response = api_client.delete("/concept-comments", params={"commentId": parent_id})
    assert response.json() == {"message": "Comment deleted successfully"}
    assert db_session.query(ConceptComment).count() == 0


def test_resolve_comment_permissions(api_client, auth_context, db_session, brand, concept):
    comment = ConceptComment(concept_id=concept.id, author_name="Reviewer", timestamp_seconds=2, comment_text="Fix logo")
    db_session.add(comment)
    db_session.commit()

    resolved = api_client.put("/concept-comments/resolve", json={"commentId": comment.id, "isResolved": True})
    assert resolved.status_code == 200
    assert resolved.json()["comment"]["is_resolved"] is True
    assert resolved.json()["comment"]["resolved_by"] == TEST_USER_ID

    reopened = api_client.put("/concept-comments/resolve", json={"commentId": comment.id, "isResolved": False})
    assert reopened.json()["comment"]["resolved_at"] is None

    # A viewer share is not enough to resolve.
    auth_context.user_id = OTHER_USER_ID
    share = BrandShare(
        brand_id=brand.id,
        shared_by_user_id=TEST_USER_ID,
        shared_with_user_id=OTHER_USER_ID,
        shared_with_email="viewer@example.com",
        role=BrandShareRoleEnum.viewer,
        status=BrandShareStatusEnum.accepted,
        invitation_token="token-viewer",
    )
    db_session.add(share)
    db_session.commit()
    denied = api_client.put("/concept-comments/resolve", json={"commentId": comment.id, "isResolved": True})
    assert denied.status_code == 403

    share.role = BrandShareRoleEnum.editor
    db_session.commit()
    allowed = api_client.put("/concept-comments/resolve", json={"commentId": comment.id, "isResolved": True})
    assert allowed.status_code == 200


@pytest.mark.parametrize(
    "review_status, incremented, revision",
    [("needs_revisions", True, 3), ("needs_additional_sizes", True, 3), ("approved", False, 2)],
)
def test_concept_resubmit(api_client, db_session, concept, review_status, incremented, revision):
    concept.review_status = review_status
    concept.revision_count = 2
    db_session.commit()

    response = api_client.post("/concept-resubmit", json={"conceptId": concept.id})
    assert response.status_code == 200
    body = response.json()
    assert body["revisionIncremented"] is incremented
    assert body["newRevision"] == revision
    assert body["concept"]["review_status"] == "ready_for_review"
    expected = f"Concept resubmitted as revision v{revision}" if incremented else "Concept resubmitted"
    assert body["message"] == expected


def test_concept_resubmit_owner_only(api_client, auth_context, concept):
    auth_context.user_id = OTHER_USER_ID
    assert api_client.post("/concept-resubmit", json={"conceptId": concept.id}).status_code == 403


def test_send_share_invitation(api_client, db_session, concept, monkeypatch):
    fake = FakeEmailClient()
    monkeypatch.setattr(EmailClient, "from_settings", classmethod(lambda cls: fake))

    response = api_client.post(
        "/share/send-invitation",
        json={
            "email": "client@example.com",
            "shareUrl": "https://app.example.com/public/concept/share-123",
            "shareType": "concept",
            "conceptId": concept.id,
            "shareId": SHARE_ID,
        },
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Invitation sent successfully"}
    assert fake.sent[0]["subject"] == "Test Owner has shared Glow Routine with you"

    activity = db_session.query(ShareActivity).one()
    assert activity.resource_type == "concept"
    assert activity.resource_id == concept.id
    assert activity.email_message_id == "msg-1"


def test_send_share_invitation_failures(api_client, db_session, batch, monkeypatch):
    monkeypatch.setattr(
        EmailClient, "from_settings", classmethod(lambda cls: FakeEmailClient(error=EmailSendError("down")))
    )
    body = {
        "email": "client@example.com",
        "shareUrl": "https://app.example.com/public/brief/share-123",
        "shareType": "batch",
        "batchId": batch.id,
        "shareId": SHARE_ID,
    }
    assert api_client.post("/share/send-invitation", json=body).status_code == 502
    assert api_client.post("/share/send-invitation", json={**body, "shareId": "stale"}).status_code == 400
    assert api_client.post("/share/send-invitation", json={**body, "email": None}).status_code == 400
    assert db_session.query(ShareActivity).count() == 0
