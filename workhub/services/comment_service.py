"""
Comment service — task discussion threads with attachment metadata.

Posting rules:
  - the first top-level comment on a task may only come from its assignee
  - later comments and replies: assignee, task creator, category lead,
    or workspace admin
"""

import logging
from datetime import datetime, timezone

from workhub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.comment import (
    ATTACHMENT_FILE_TYPES,
    MAX_ATTACHMENTS,
    MAX_COMMENT_LENGTH,
    Comment,
    CommentAttachment,
)
from workhub.models.user import User
from workhub.services import permission_service as perms
from workhub.services import task_service
from workhub.services.notification import NotificationService
from workhub.services.permission_service import Capability

logger = logging.getLogger(__name__)


def _can_reply(resolved, task, user_id: int) -> bool:
    if resolved.is_workspace_admin:
        return True
    if user_id in (task.assignee_id, task.created_by):
        return True
    return resolved.category_role == "lead"


def _build_attachments(items) -> list[CommentAttachment]:
    items = list(items or [])
    if len(items) > MAX_ATTACHMENTS:
        raise ValidationError(f"At most {MAX_ATTACHMENTS} attachments per comment",
                              details={"attachments": len(items)})
    result = []
    for idx, item in enumerate(items):
        file_name = (item.get("file_name") or "").strip()
        file_url = (item.get("file_url") or "").strip()
        if not file_name or not file_url:
            raise ValidationError("Attachment file_name and file_url are required",
                                  details={"attachments": idx})
        mime_type = item.get("mime_type") or ""
        file_type = item.get("file_type") or ("image" if mime_type.startswith("image/") else "document")
        if file_type not in ATTACHMENT_FILE_TYPES:
            raise ValidationError(f"Invalid file_type: {file_type}", details={"attachments": idx})
        result.append(CommentAttachment(
            file_name=file_name,
            file_url=file_url,
            file_type=file_type,
            file_size=item.get("file_size"),
            mime_type=mime_type or None,
        ))
    return result


def create_comment(task_id: int, user_id: int, content: str,
                   parent_id: int | None = None, attachments=None) -> Comment:
    task = task_service.get_task_or_404(task_id)
    resolved = perms.authorize(user_id, Capability.VIEW, task.project.workspace_id,
                               task.project_id, task.category)

    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment content is required", details={"content": "required"})
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be <= {MAX_COMMENT_LENGTH} chars",
                              details={"content": "too long"})

    parent = None
    if parent_id is not None:
        parent = db.session.get(Comment, parent_id)
        if parent is None or not parent.is_active or parent.task_id != task.id:
            raise NotFoundError("Comment", parent_id)
        if not _can_reply(resolved, task, user_id):
            raise ForbiddenError("Only the assignee, leads and admins can reply to comments")
    else:
        has_thread = (
            Comment.query.filter_by(task_id=task.id, parent_id=None, is_active=True).first()
            is not None
        )
        if not has_thread and user_id != task.assignee_id:
            raise ForbiddenError("Only the task assignee can post the first comment")
        if has_thread and not _can_reply(resolved, task, user_id):
            raise ForbiddenError("Only the assignee, leads and admins can comment")

    comment = Comment(task_id=task.id, author_id=user_id, parent_id=parent_id, content=content)
    comment.attachments.extend(_build_attachments(attachments))
    db.session.add(comment)
    db.session.flush()

    author = db.session.get(User, user_id)
    if parent is not None:
        if parent.author_id and parent.author_id != user_id:
            NotificationService.emit(
                "comment_reply", parent.author_id,
                title="New reply",
                message=f'{author.name} replied to your comment on "{task.title}"',
                sender_id=user_id,
                data={"task_id": task.id},
            )
    else:
        NotificationService.emit_many(
            "task_comment",
            [rid for rid in (task.assignee_id, task.created_by) if rid and rid != user_id],
            title="New comment",
            message=f'{author.name} commented on "{task.title}"',
            sender_id=user_id,
            data={"task_id": task.id},
        )
    db.session.commit()
    logger.info("Comment %s created task=%s reply_to=%s", comment.id, task.id, parent_id)
    return comment


def list_task_comments(task_id: int, user_id: int) -> list[dict]:
    """Top-level comments oldest first, each with its active replies."""
    task = task_service.get_task(task_id, user_id)
    comments = (
        Comment.query
        .filter_by(task_id=task.id, is_active=True)
        .order_by(Comment.created_at, Comment.id)
        .all()
    )
    replies = {}
    for c in comments:
        if c.parent_id is not None:
            replies.setdefault(c.parent_id, []).append(c.to_dict())
    result = []
    for c in comments:
        if c.parent_id is None:
            d = c.to_dict()
            d["replies"] = replies.get(c.id, [])
            d["reply_count"] = len(d["replies"])
            result.append(d)
    return result


def _get_comment_or_404(comment_id: int) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if comment is None or not comment.is_active:
        raise NotFoundError("Comment", comment_id)
    return comment


def update_comment(comment_id: int, user_id: int, content: str) -> Comment:
    comment = _get_comment_or_404(comment_id)
    if comment.author_id != user_id:
        raise ForbiddenError("Only the author can edit a comment")
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment content is required", details={"content": "required"})
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be <= {MAX_COMMENT_LENGTH} chars",
                              details={"content": "too long"})
    comment.content = content
    comment.is_edited = True
    comment.edited_at = datetime.now(timezone.utc)
    db.session.commit()
    return comment


def delete_comment(comment_id: int, user_id: int) -> None:
    comment = _get_comment_or_404(comment_id)
    if comment.author_id != user_id:
        task = task_service.get_task_or_404(comment.task_id)
        resolved = perms.resolve_role(user_id, task.project.workspace_id)
        if not resolved.is_workspace_admin:
            raise ForbiddenError("Only the author or an admin can delete a comment")
    comment.is_active = False
    db.session.commit()
    logger.info("Comment %s deleted by=%s", comment_id, user_id)
