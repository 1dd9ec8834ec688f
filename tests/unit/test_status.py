"""
Unit tests for pcap_jobs.status.
"""

from pcap_common.models import JobState, JobStatus
from pcap_jobs.local_backend import FilePageable
from pcap_jobs.status import to_pcap_status


class TestToPcapStatus:
    """Test suite for to_pcap_status."""

    def test_copies_fields_verbatim(self):
        status = JobStatus(
            job_id="job_1",
            state=JobState.RUNNING,
            description="Job running",
            percent_complete=12.5,
        )

        result = to_pcap_status(status)

        assert result.job_id == "job_1"
        assert result.job_status == "RUNNING"
        assert result.description == "Job running"
        assert result.percent_complete == 12.5
        assert result.page_total is None

    def test_page_total_for_succeeded_job(self):
        status = JobStatus(job_id="job_1", state=JobState.SUCCEEDED)

        result = to_pcap_status(status, FilePageable(["/a", "/b", "/c"]))

        assert result.page_total == 3

    def test_page_total_zero(self):
        status = JobStatus(job_id="job_1", state=JobState.SUCCEEDED)

        assert to_pcap_status(status, FilePageable([])).page_total == 0

    def test_pages_ignored_unless_succeeded(self):
        status = JobStatus(job_id="job_1", state=JobState.KILLED)

        assert to_pcap_status(status, FilePageable(["/a"])).page_total is None

    def test_succeeded_without_pages(self):
        status = JobStatus(job_id="job_1", state=JobState.SUCCEEDED)

        assert to_pcap_status(status).page_total is None
