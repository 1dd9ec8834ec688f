"""
Projection of internal job status onto the public PcapStatus record.
"""

from pcap_common.backend import Pageable
from pcap_common.models import JobState, JobStatus, PcapStatus


def to_pcap_status(status: JobStatus, pageable: Pageable | None = None) -> PcapStatus:
    """
    Copy the backend status verbatim and add the page count when known.

    Args:
        status: Live status reported by the backend
        pageable: Result pages, only passed in once the job is done

    Returns:
        PcapStatus with page_total set only for a finished, successful job
    """
    page_total = None
    if status.state is JobState.SUCCEEDED and pageable is not None:
        page_total = pageable.size()
    return PcapStatus(
        job_id=status.job_id,
        job_status=status.state.value,
        description=status.description,
        percent_complete=status.percent_complete,
        page_total=page_total,
    )
