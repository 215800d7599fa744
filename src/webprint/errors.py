"""
Error taxonomy shared by the queue server and the print agent
"""


class WebPrintError(Exception):
    """Base class for all service errors"""


class PageRangeError(WebPrintError, ValueError):
    """Page range text rejected at intake"""


class InvalidRangeSyntax(PageRangeError):
    pass


class OutOfRange(PageRangeError):
    pass


class JobNotFound(WebPrintError, LookupError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobNotPending(WebPrintError):
    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is already {status}")
        self.job_id = job_id
        self.status = status


class FileGone(WebPrintError):
    """The job's backing file no longer exists; the job should be discarded"""

    def __init__(self, job_id: str):
        super().__init__(f"File for job {job_id} is no longer available")
        self.job_id = job_id


class ConversionUnavailable(WebPrintError):
    """External converter is not installed"""


class ConversionFailed(WebPrintError):
    """External converter ran and failed"""


class PrintInvocationFailed(WebPrintError):
    pass


class ToolTimeout(WebPrintError):
    pass
