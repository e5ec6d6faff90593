from typing import Generic, TypeVar, Optional, Any, Dict, List, Union
from http import HTTPStatus

from validation.models import Finding

T = TypeVar('T')  # Generic type variable

class Result(Generic[T]):
    """
    Outcome of an upload, validation or import step.

    A successful Result carries data; a failed one carries a display message
    and, when the failure came from validation, the findings behind it.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        findings (List[Finding]): Validation findings explaining a rejection
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None,
        findings: Optional[List[Finding]] = None
    ):
        self.success = success
        self.data = data
        self.error = error
        self.findings = list(findings or [])

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        elif isinstance(status_code, HTTPStatus):
            self.status_code = status_code
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST) -> "Result[T]":
        """
        Create a failed Result with the provided error message.

        Args:
            error (str): The error message describing the failure
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 400 BAD_REQUEST.

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, error=error, status_code=status_code)

    @classmethod
    def invalid_input(cls, error: str = "Invalid input data") -> "Result[T]":
        return cls(success=False, error=error, status_code=HTTPStatus.BAD_REQUEST)

    @classmethod
    def unprocessable(cls, error: str, findings: Optional[List[Finding]] = None) -> "Result[T]":
        """
        Create a failed Result for a workbook whose sheet structure is unusable.

        Args:
            error (str): Summary message
            findings (Optional[List[Finding]]): Structural findings behind the rejection

        Returns:
            Result[T]: A failed Result with 422 status code
        """
        return cls(success=False, error=error, status_code=HTTPStatus.UNPROCESSABLE_ENTITY, findings=findings)

    @classmethod
    def rejected(cls, findings: List[Finding], error: str = "Validation failed") -> "Result[T]":
        """
        Create a failed Result for rows that broke one or more field rules.

        Args:
            findings (List[Finding]): Row findings, errors first
            error (str, optional): Summary message. Defaults to "Validation failed".

        Returns:
            Result[T]: A failed Result with 400 status code
        """
        return cls(success=False, error=error, status_code=HTTPStatus.BAD_REQUEST, findings=findings)

    @classmethod
    def server_error(cls, error: str = "Internal server error") -> "Result[T]":
        return cls(success=False, error=error, status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self, default: Optional[T] = None) -> Optional[T]:
        """
        Safely access the data value with an optional default value.

        Args:
            default (Optional[T], optional): Value to return if the Result is a failure. Defaults to None.

        Returns:
            Optional[T]: The data value if successful, otherwise the default value
        """
        return self.data if self.is_success() else default

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert a failed Result to the error payload returned by the API.

        Returns:
            Dict[str, Any]: ``success``, ``error`` and, when present, ``errors``
        """
        response: Dict[str, Any] = {"success": self.success}
        if self.is_success():
            response["data"] = self.data
            return response
        response["error"] = self.error
        if self.findings:
            response["errors"] = [finding.to_payload() for finding in self.findings]
        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return (
            f"Result(success={self.success}, status_code={self.status_code!r}, "
            f"data={self.data!r}, error={self.error!r}, findings={len(self.findings)})"
        )
