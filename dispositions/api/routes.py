"""API routes for letter-activity links and the disposition lifecycle."""
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status

from dispositions.api.dependencies import get_actor, get_dispatcher, get_lifecycle, get_linking
from dispositions.api.schemas import (
    ActivityResponse,
    AttachmentResponse,
    CreateResultResponse,
    DeadlineSweepResponse,
    DeadlineUpdate,
    DelegateRequest,
    DispositionCreate,
    DispositionResponse,
    ErrorResponse,
    HistoryResponse,
    LinkCreate,
    LinkDispositionsResponse,
    LinkResponse,
    NotesUpdate,
    NotificationResponse,
    ReportLinkCreate,
    StatusUpdate,
    UnlinkResponse,
)
from dispositions.models.attachment import Attachment
from dispositions.services.authorization import Actor, require_elevated
from dispositions.services.lifecycle import DispositionLifecycle
from dispositions.services.linking import LinkingCoordinator
from dispositions.services.notifications import NotificationDispatcher

ERROR_RESPONSES = {
    401: {"description": "Missing or unknown X-User-Id"},
    403: {"model": ErrorResponse, "description": "Actor lacks permission"},
    404: {"model": ErrorResponse, "description": "Referenced entity not found"},
    422: {"model": ErrorResponse, "description": "Invalid input"},
    503: {"model": ErrorResponse, "description": "Database unavailable, try again"},
}

router = APIRouter(responses=ERROR_RESPONSES)


# Link endpoints
@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def create_link(
    link_data: LinkCreate,
    actor: Actor = Depends(get_actor),
    linking: LinkingCoordinator = Depends(get_linking),
):
    """
    Link a letter to an activity and create its dispositions, atomically.
    Either the link and every disposition exist afterwards, or none of them.
    """
    disposition_ids = linking.link(
        link_data.letter_id,
        link_data.activity_id,
        link_data.assignees,
        link_data.instruction_text,
        deadline=link_data.deadline,
        created_by=link_data.created_by,
        actor=actor,
    )
    return LinkResponse(
        letter_id=link_data.letter_id,
        activity_id=link_data.activity_id,
        disposition_ids=disposition_ids,
    )


@router.delete("/links/{letter_id}/{activity_id}", response_model=UnlinkResponse)
def delete_link(
    letter_id: str,
    activity_id: str,
    actor: Actor = Depends(get_actor),
    linking: LinkingCoordinator = Depends(get_linking),
):
    """Remove a link and all of its dispositions. Letter and activity stay."""
    removed = linking.unlink(letter_id, activity_id, actor=actor)
    return UnlinkResponse(letter_id=letter_id, activity_id=activity_id, removed=removed)


@router.post("/links/{letter_id}/{activity_id}/metadata", response_model=ActivityResponse)
def copy_link_metadata(
    letter_id: str,
    activity_id: str,
    actor: Actor = Depends(get_actor),
    linking: LinkingCoordinator = Depends(get_linking),
):
    """Copy the letter's descriptive fields onto the activity."""
    return linking.copy_metadata(letter_id, activity_id, actor=actor)


@router.get("/links/{letter_id}/{activity_id}/dispositions", response_model=LinkDispositionsResponse)
def list_link_dispositions(
    letter_id: str,
    activity_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    dispositions = lifecycle.list_for_link(letter_id, activity_id)
    return LinkDispositionsResponse(
        letter_id=letter_id,
        activity_id=activity_id,
        all_completed=lifecycle.all_completed(letter_id, activity_id),
        dispositions=[DispositionResponse.model_validate(d) for d in dispositions],
    )


# Disposition endpoints
@router.post("/dispositions", response_model=CreateResultResponse, status_code=status.HTTP_201_CREATED)
def create_dispositions(
    disposition_data: DispositionCreate,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """
    Create one disposition per assignee.
    Partial success is a normal outcome: check failed_assignees.
    """
    result = lifecycle.create(
        disposition_data.letter_id,
        disposition_data.activity_id,
        disposition_data.assignees,
        disposition_data.instruction_text,
        deadline=disposition_data.deadline,
        created_by=disposition_data.created_by,
        actor=actor,
    )
    return CreateResultResponse(
        created=[DispositionResponse.model_validate(d) for d in result.created],
        failed_assignees=result.failed_assignees,
    )


@router.get("/dispositions", response_model=List[DispositionResponse])
def list_dispositions(
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """List the dispositions the acting user is allowed to see."""
    return lifecycle.list_visible(actor)


@router.get("/dispositions/{disposition_id}", response_model=DispositionResponse)
def get_disposition(
    disposition_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """Single disposition, subject to the same read filter as the list."""
    return lifecycle.get_visible(disposition_id, actor)


@router.put("/dispositions/{disposition_id}/status", response_model=DispositionResponse)
def update_status(
    disposition_id: str,
    status_data: StatusUpdate,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """
    Move a disposition to a new status.
    Completed is refused while the disposition has no reports.
    """
    return lifecycle.update_status(disposition_id, status_data.status, actor)


@router.put("/dispositions/{disposition_id}/notes", response_model=DispositionResponse)
def update_notes(
    disposition_id: str,
    notes_data: NotesUpdate,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    return lifecycle.update_notes(disposition_id, notes_data.notes, actor)


@router.put("/dispositions/{disposition_id}/deadline", response_model=DispositionResponse)
def update_deadline(
    disposition_id: str,
    deadline_data: DeadlineUpdate,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    return lifecycle.update_deadline(disposition_id, deadline_data.deadline, actor)


@router.post("/dispositions/{disposition_id}/delegate", response_model=DispositionResponse)
def delegate_disposition(
    disposition_id: str,
    delegate_data: DelegateRequest,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """
    Hand the disposition to a single new assignee.
    The row is updated in place; the previous values live on in history.
    """
    return lifecycle.delegate(
        disposition_id,
        delegate_data.new_assignee,
        delegate_data.instruction_text,
        deadline=delegate_data.deadline,
        notes=delegate_data.notes,
        actor=actor,
    )


@router.delete("/dispositions/{disposition_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_disposition(
    disposition_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    lifecycle.delete(disposition_id, actor)


# Report endpoints
@router.post(
    "/dispositions/{disposition_id}/reports",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_report(
    disposition_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    content = file.file.read()
    attachment = lifecycle.upload_report(
        disposition_id, file.filename or "report", content, file.content_type, actor
    )
    return attachment.to_dict()


@router.post(
    "/dispositions/{disposition_id}/reports/link",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def attach_report_link(
    disposition_id: str,
    link_data: ReportLinkCreate,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """Attach an external link as a report. No blob is stored."""
    attachment = Attachment(name=link_data.name, url=link_data.url, is_link=True)
    return lifecycle.attach_report(disposition_id, attachment, actor).to_dict()


@router.delete("/dispositions/{disposition_id}/reports/{attachment_id}", response_model=AttachmentResponse)
def remove_report(
    disposition_id: str,
    attachment_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    return lifecycle.remove_report(disposition_id, attachment_id, actor).to_dict()


# History endpoints
@router.get("/dispositions/{disposition_id}/history", response_model=List[HistoryResponse])
def get_history(
    disposition_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: DispositionLifecycle = Depends(get_lifecycle),
):
    """Audit trail for a disposition, newest first. Still available after deletion."""
    return lifecycle.history_for(disposition_id, actor)


# Jobs
@router.post("/jobs/deadline-reminders", response_model=DeadlineSweepResponse)
def run_deadline_reminders(
    actor: Actor = Depends(get_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Entry point for an external daily scheduler, which calls as a Supervisor or Super Admin."""
    require_elevated(actor)
    sent = dispatcher.remind_approaching_deadlines()
    return DeadlineSweepResponse(
        sent=len(sent),
        notifications=[NotificationResponse.model_validate(n) for n in sent],
    )
