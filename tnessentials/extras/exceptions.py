""" Errors raised by the essentiality pipeline. Every stage raises one of
    these instead of letting an undefined value reach the classifier. """


class TnEssentialsError(Exception):
    pass


class InputTableError(TnEssentialsError):
    ''' Malformed, incomplete or duplicated rows in an input table. The
    offending rows are kept in `rows` for reporting. '''

    def __init__(self, message, rows=None):
        self.rows = rows if rows is not None else []
        if self.rows:
            shown = "; ".join(str(r) for r in self.rows[:5])
            more = f" (+{len(self.rows) - 5} more)" if len(self.rows) > 5 else ""
            message = f"{message}: {shown}{more}"
        super().__init__(message)


class ConfigurationError(TnEssentialsError):
    pass


class ThresholdFitError(TnEssentialsError):
    pass


class NoBimodalStructureError(ThresholdFitError):
    pass


class SubpopulationTooSmallError(ThresholdFitError):
    pass


class DegenerateAmbiguousZoneError(ThresholdFitError):
    pass
