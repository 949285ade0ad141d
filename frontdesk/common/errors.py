"""Error kinds surfaced by the front desk core.

Every failure the presentation layer can see carries a stable ``kind`` so it
can pick an actionable message.
"""


class FrontDeskError(Exception):
    kind = 'FrontDeskError'
    status_code = 500

    def __init__(self, message: str = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {'error': self.kind, 'message': self.message}


class TokenAllocationFailed(FrontDeskError):
    """Neither the atomic sequence nor the offline fallback produced a token."""
    kind = 'TokenAllocationFailed'
    status_code = 503


class InvalidTransition(FrontDeskError):
    kind = 'InvalidTransition'
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"cannot move visit from '{current}' to '{target}'")
        self.current = current
        self.target = target


class EmptyPrescription(FrontDeskError):
    kind = 'EmptyPrescription'
    status_code = 400

    def __init__(self, message: str = 'prescription required before completing'):
        super().__init__(message)


class InvalidAmount(FrontDeskError):
    kind = 'InvalidAmount'
    status_code = 400


class SyncFailed(FrontDeskError):
    """The persistent store could not be read or written."""
    kind = 'SyncFailed'
    status_code = 503


class NotFound(FrontDeskError):
    kind = 'NotFound'
    status_code = 404

    def __init__(self, visit_id):
        super().__init__(f"visit {visit_id} not found")
        self.visit_id = visit_id


class InvalidStatus(FrontDeskError, ValueError):
    kind = 'InvalidStatus'
    status_code = 400


class InvalidDemographics(FrontDeskError, ValueError):
    kind = 'InvalidDemographics'
    status_code = 400

    def __init__(self, errors: dict):
        super().__init__('; '.join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['fields'] = self.errors
        return data


class InvalidProfile(FrontDeskError, ValueError):
    kind = 'InvalidProfile'
    status_code = 400
