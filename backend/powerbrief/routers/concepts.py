from __future__ import annotations

import html
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user, get_optional_user
from powerbrief.config import settings
from powerbrief.db.deps import get_session
from powerbrief.db.enums import AdAppStatusEnum, AdMetaStatusEnum, BrandShareRoleEnum
from powerbrief.db.models import (
    AdDraft,
    AdDraftAsset,
    BriefBatch,
    BriefConcept,
    ConceptComment,
    as_utc,
    is_uuid,
    utcnow,
)
from powerbrief.db.repositories.brands import BrandSharesRepository, BrandsRepository
from powerbrief.db.repositories.concepts import (
    BriefBatchesRepository,
    BriefConceptsRepository,
    ConceptCommentsRepository,
    ShareActivityRepository,
)
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.concepts import (
    AppendAssetsRequest,
    BriefBatchCreateRequest,
    BriefBatchShareRequest,
    BriefConceptCreateRequest,
    ConceptCommentCreateRequest,
    ConceptCommentResolveRequest,
    ConceptCommentUpdateRequest,
    ConceptResubmitRequest,
    SendToAdBatchRequest,
    ShareInvitationRequest,
)
from powerbrief.services import slack
from powerbrief.services.ad_launch import asset_type_from
from powerbrief.services.email import EmailClient, EmailConfigError, EmailSendError

router = APIRouter(tags=["concepts"])
logger = logging.getLogger(__name__)

REVISION_REVIEW_STATUSES = ("needs_revisions", "needs_additional_sizes")


def _app_url(path: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}{path}"


def share_is_active(batch: BriefBatch, share_id: Optional[str]) -> bool:
    if not share_id:
        return False
    share = (batch.share_settings or {}).get(share_id)
    if not isinstance(share, dict):
        return False
    expires_at = share.get("expires_at")
    if expires_at:
        # Stored as ISO text inside the JSON column.
        if as_utc(datetime.fromisoformat(expires_at)) <= utcnow():
            return False
    return True


def _get_concept_or_404(session: Session, concept_id: Optional[str]) -> BriefConcept:
    concept = BriefConceptsRepository(session).get(concept_id) if is_uuid(concept_id) else None
    if concept is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Concept not found")
    return concept


def _get_batch_or_404(session: Session, auth: AuthContext, batch_id: str) -> BriefBatch:
    batch = BriefBatchesRepository(session).get(batch_id) if is_uuid(batch_id) else None
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brief batch not found")
    get_brand_or_404(session=session, auth=auth, brand_id=batch.brand_id)
    return batch


def _require_concept_access(
    session: Session, concept: BriefConcept, auth: Optional[AuthContext], share_id: Optional[str]
) -> None:
    """Brand members pass; anonymous reviewers need a live share on the concept's batch."""
    if auth is not None and BrandsRepository(session).get_for_user(auth.user_id, concept.batch.brand_id):
        return
    if share_is_active(concept.batch, share_id):
        return
    if auth is None and not share_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required or valid share link needed",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Invalid share link or concept not accessible",
    )


@router.get("/brief-batches")
def list_brief_batches(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return serialize_rows(BriefBatchesRepository(session).list(brand.id))


@router.post("/brief-batches", status_code=status.HTTP_201_CREATED)
def create_brief_batch(
    payload: BriefBatchCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and name are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    batch = BriefBatchesRepository(session).create(brand_id=brand.id, user_id=auth.user_id, name=payload.name)
    logger.info("Brief batch created", extra={"brand_id": brand.id, "batch_id": batch.id})
    return serialize_row(batch)


@router.get("/brief-batches/{batch_id}/concepts")
def list_brief_concepts(
    batch_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    batch = _get_batch_or_404(session, auth, batch_id)
    return serialize_rows(batch.concepts)


@router.post("/brief-batches/{batch_id}/concepts", status_code=status.HTTP_201_CREATED)
def create_brief_concept(
    batch_id: str,
    payload: BriefConceptCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.conceptTitle:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="conceptTitle is required.")
    batch = _get_batch_or_404(session, auth, batch_id)
    concept = BriefConceptsRepository(session).create(
        brief_batch_id=batch.id,
        user_id=auth.user_id,
        concept_title=payload.conceptTitle,
        strategist=payload.strategist,
        video_editor=payload.videoEditor,
        order_in_batch=len(batch.concepts),
    )
    return serialize_row(concept)


@router.post("/brief-batches/{batch_id}/share", status_code=status.HTTP_201_CREATED)
def share_brief_batch(
    batch_id: str,
    payload: BriefBatchShareRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    batch = _get_batch_or_404(session, auth, batch_id)
    share_id = str(uuid.uuid4())
    share_settings = dict(batch.share_settings or {})
    share_settings[share_id] = {
        "is_editable": payload.isEditable,
        "expires_at": payload.expiresAt.isoformat() if payload.expiresAt else None,
        "email": payload.email,
        "share_type": "email" if payload.email else "link",
        "created_at": utcnow().isoformat(),
    }
    BriefBatchesRepository(session).update_fields(batch, share_settings=share_settings)
    logger.info("Brief batch shared", extra={"batch_id": batch.id, "share_id": share_id})
    return {"shareId": share_id, "shareUrl": _app_url(f"/public/brief/{share_id}")}


@router.post("/powerbrief/append-assets")
def append_concept_assets(
    payload: AppendAssetsRequest,
    auth: Optional[AuthContext] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    if not payload.conceptId or payload.assetGroups is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields.")
    concept = _get_concept_or_404(session, payload.conceptId)
    _require_concept_access(session, concept, auth, payload.shareId)

    uploaded_at = utcnow().isoformat()
    new_groups: list[dict[str, Any]] = []
    for group in payload.assetGroups:
        data = group.model_dump()
        data["uploadedAt"] = uploaded_at
        for asset in data["assets"]:
            asset["uploadedAt"] = uploaded_at
        new_groups.append(data)
    combined = [*(concept.uploaded_assets or []), *new_groups]

    BriefConceptsRepository(session).update_fields(
        concept,
        uploaded_assets=combined,
        asset_upload_status="uploaded",
        review_status="ready_for_review",
        status="READY FOR REVIEW",
    )

    batch = concept.batch
    brand = BrandsRepository(session).get(batch.brand_id)
    public_url = (
        _app_url(f"/public/concept/{payload.shareId}/{concept.id}") if payload.shareId else _app_url("/app/reviews")
    )
    message = slack.build_concept_submission_message(
        brand_name=brand.name,
        batch_name=batch.name,
        concept_title=concept.concept_title,
        video_editor=concept.video_editor,
        public_share_url=public_url,
        review_dashboard_url=_app_url("/app/reviews"),
    )
    slack.notify(brand, message, event="concept_submission")

    return {
        "message": "Additional assets appended successfully",
        "assetGroups": combined,
        "newAssetsCount": len(new_groups),
        "totalAssetsCount": len(combined),
    }


@router.post("/powerbrief/send-to-ad-batch")
def send_concept_to_ad_batch(
    payload: SendToAdBatchRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.conceptId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing concept ID.")
    concept = _get_concept_or_404(session, payload.conceptId)
    batch = concept.batch
    get_brand_or_404(session=session, auth=auth, brand_id=batch.brand_id)
    groups = concept.uploaded_assets or []
    if not groups:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No assets to send.")

    created: list[tuple[AdDraft, int]] = []
    for group in groups:
        ratios = group.get("aspectRatios") or []
        draft = AdDraft(
            brand_id=batch.brand_id,
            user_id=batch.user_id,
            ad_batch_id=None,
            ad_name=f"{concept.concept_title} - {group.get('baseName')}",
            primary_text=f"Creative assets from PowerBrief concept: {concept.concept_title}",
            headline=concept.concept_title,
            description=f"Assets: {', '.join(ratios) if ratios else 'Multiple formats'}",
            meta_status=AdMetaStatusEnum.DRAFT,
            app_status=AdAppStatusEnum.DRAFT,
        )
        for asset in group.get("assets") or []:
            draft.assets.append(
                AdDraftAsset(name=asset["name"], url=asset["supabaseUrl"], type=asset_type_from(asset.get("type")))
            )
        session.add(draft)
        created.append((draft, len(draft.assets)))
    concept.asset_upload_status = "sent_to_ad_upload"
    # Drafts and the concept status land in one commit.
    session.commit()

    logger.info("Concept sent to ad upload", extra={"concept_id": concept.id, "drafts": len(created)})
    return {
        "message": "Assets sent to ad upload tool successfully",
        "createdDrafts": [{"id": draft.id, "name": draft.ad_name, "assetCount": count} for draft, count in created],
        "totalDrafts": len(created),
    }


@router.get("/concept-comments")
def list_concept_comments(
    concept_id: Optional[str] = Query(default=None, alias="conceptId"),
    share_id: Optional[str] = Query(default=None, alias="shareId"),
    auth: Optional[AuthContext] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    if not concept_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="conceptId is required.")
    concept = _get_concept_or_404(session, concept_id)
    _require_concept_access(session, concept, auth, share_id)
    return {"comments": serialize_rows(ConceptCommentsRepository(session).list(concept.id))}


@router.post("/concept-comments")
def create_concept_comment(
    payload: ConceptCommentCreateRequest,
    auth: Optional[AuthContext] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    text = (payload.comment or "").strip()
    if not payload.conceptId or payload.timestamp is None or not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Concept ID, timestamp, and comment are required",
        )
    concept = _get_concept_or_404(session, payload.conceptId)
    _require_concept_access(session, concept, auth, payload.shareId)

    repo = ConceptCommentsRepository(session)
    if payload.parentId:
        parent = repo.get(payload.parentId) if is_uuid(payload.parentId) else None
        if parent is None or parent.concept_id != concept.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parent comment not found")

    if auth is not None:
        author_name = auth.email or "Authenticated User"
        author_email = auth.email
    elif payload.commenterName and payload.commenterEmail:
        author_name = f"{payload.commenterName} ({payload.commenterEmail})"
        author_email = payload.commenterEmail
    else:
        author_name = "Anonymous Reviewer"
        author_email = None

    comment = repo.create(
        concept_id=concept.id,
        user_id=auth.user_id if auth else None,
        author_name=author_name,
        author_email=author_email,
        timestamp_seconds=payload.timestamp,
        comment_text=text,
        parent_id=payload.parentId or None,
    )
    return {"comment": serialize_row(comment)}


def _get_editable_comment(
    session: Session, comment_id: Optional[str], auth: Optional[AuthContext], share_id: Optional[str]
) -> ConceptComment:
    comment = ConceptCommentsRepository(session).get(comment_id) if is_uuid(comment_id) else None
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    if comment.user_id is not None:
        if auth is None or comment.user_id != auth.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to edit this comment")
        return comment
    # Anonymous comments stay editable from the share link they were left on.
    concept = BriefConceptsRepository(session).get(comment.concept_id)
    if not share_is_active(concept.batch, share_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to edit this comment")
    return comment


@router.put("/concept-comments")
def update_concept_comment(
    payload: ConceptCommentUpdateRequest,
    auth: Optional[AuthContext] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    text = (payload.comment or "").strip()
    if not payload.commentId or not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment ID and comment text are required")
    comment = _get_editable_comment(session, payload.commentId, auth, payload.shareId)
    ConceptCommentsRepository(session).update_fields(comment, comment_text=text)
    return {"comment": serialize_row(comment)}


@router.delete("/concept-comments")
def delete_concept_comment(
    comment_id: Optional[str] = Query(default=None, alias="commentId"),
    share_id: Optional[str] = Query(default=None, alias="shareId"),
    auth: Optional[AuthContext] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    if not comment_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment ID is required")
    comment = _get_editable_comment(session, comment_id, auth, share_id)
    ConceptCommentsRepository(session).delete_with_replies(comment.id)
    return {"message": "Comment deleted successfully"}


@router.put("/concept-comments/resolve")
def resolve_concept_comment(
    payload: ConceptCommentResolveRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.commentId or payload.isResolved is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Comment ID and resolution status are required",
        )
    repo = ConceptCommentsRepository(session)
    comment = repo.get(payload.commentId) if is_uuid(payload.commentId) else None
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")

    concept = BriefConceptsRepository(session).get(comment.concept_id)
    brand = BrandsRepository(session).get(concept.batch.brand_id)
    allowed = concept.user_id == auth.user_id or brand.user_id == auth.user_id
    if not allowed:
        share = BrandSharesRepository(session).get_accepted_for_user(brand.id, auth.user_id)
        # Viewers can read comments but not resolve them.
        allowed = share is not None and share.role == BrandShareRoleEnum.editor
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to resolve comments on this concept",
        )

    repo.update_fields(
        comment,
        is_resolved=payload.isResolved,
        resolved_at=utcnow() if payload.isResolved else None,
        resolved_by=auth.user_id if payload.isResolved else None,
    )
    return {"comment": serialize_row(comment)}


@router.post("/concept-resubmit")
def resubmit_concept(
    payload: ConceptResubmitRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.conceptId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Concept ID is required")
    concept = _get_concept_or_404(session, payload.conceptId)
    if concept.user_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to update this concept")

    current = concept.revision_count or 1
    incremented = concept.review_status in REVISION_REVIEW_STATUSES
    revision = current + 1 if incremented else current
    BriefConceptsRepository(session).update_fields(
        concept, review_status="ready_for_review", revision_count=revision
    )
    logger.info("Concept resubmitted", extra={"concept_id": concept.id, "revision": revision})
    return {
        "concept": serialize_row(concept),
        "revisionIncremented": incremented,
        "newRevision": revision,
        "message": f"Concept resubmitted as revision v{revision}" if incremented else "Concept resubmitted",
    }


@router.post("/share/send-invitation")
def send_share_invitation(
    payload: ShareInvitationRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.email or not payload.shareUrl:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and shareUrl are required")

    if payload.shareType == "concept":
        concept = _get_concept_or_404(session, payload.conceptId)
        batch = concept.batch
        resource_id, resource_name = concept.id, concept.concept_title
    else:
        batch = BriefBatchesRepository(session).get(payload.batchId) if is_uuid(payload.batchId) else None
        if batch is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brief batch not found")
        resource_id, resource_name = batch.id, batch.name
    get_brand_or_404(session=session, auth=auth, brand_id=batch.brand_id)
    if not share_is_active(batch, payload.shareId):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Share link is not active")

    sender = auth.full_name or auth.email or "A colleague"
    safe_sender, safe_name, safe_url = html.escape(sender), html.escape(resource_name), html.escape(payload.shareUrl)
    try:
        message_id = EmailClient.from_settings().send(
            to=payload.email,
            subject=f"{sender} has shared {resource_name} with you",
            html=(
                "<h2>You've been invited to view content</h2>"
                f"<p>{safe_sender} has shared {safe_name} with you.</p>"
                f"<p><a href=\"{safe_url}\">View Shared Content</a></p>"
                f"<p>Or copy this link: {safe_url}</p>"
            ),
            text=f"{sender} has shared {resource_name} with you: {payload.shareUrl}",
        )
    except (EmailConfigError, EmailSendError) as exc:
        logger.warning("Share invitation email failed", extra={"share_id": payload.shareId}, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send invitation: {exc}",
        ) from exc

    ShareActivityRepository(session).create(
        user_id=auth.user_id,
        share_id=payload.shareId,
        resource_type=payload.shareType,
        resource_id=resource_id,
        recipient_email=payload.email,
        share_url=payload.shareUrl,
        email_message_id=message_id,
    )
    return {"success": True, "message": "Invitation sent successfully"}
