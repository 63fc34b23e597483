"""
Processing parameter models for Inscription Reader.

Parameters are per-request configuration sent with every preprocess and
translate call. The backend keeps no copy of them, so the client is
responsible for sending the same values for both calls of one image.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple


SCALE_MIN = 10
SCALE_MAX = 100
NOISE_MIN = 0.1
NOISE_MAX = 10.0
NOISE_STEP = 0.1


@dataclass(frozen=True)
class ProcessingParameters:
    """
    Immutable preprocessing parameters for one request.

    Attributes:
        scale: Resize factor in percent (10-100)
        noise_divisor: Noise reduction divisor (0.1-10, slider step 0.1)

    Example:
        >>> params = ProcessingParameters.from_user(30, 0.9)
        >>> valid, errors = params.validate()
    """

    scale: int = 50
    noise_divisor: float = 1.0

    @classmethod
    def from_user(cls, scale, noise_divisor) -> 'ProcessingParameters':
        """
        Build parameters from raw slider/CLI values.

        The noise divisor is snapped to the slider step so that equal
        slider positions always compare equal.

        Raises:
            ValueError: If a value cannot be converted to a number
        """
        if isinstance(scale, bool) or isinstance(noise_divisor, bool):
            raise ValueError("Parameters must be numeric")
        scale_value = float(scale)
        if not scale_value.is_integer():
            raise ValueError(f"Scale must be a whole percentage, got {scale}")
        return cls(scale=int(scale_value), noise_divisor=round(float(noise_divisor), 1))

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate the parameters.

        Returns:
            Tuple of (is_valid, list_of_error_messages)
        """
        errors = []

        if not isinstance(self.scale, int) or isinstance(self.scale, bool):
            errors.append(f"Scale must be an integer percentage: {self.scale!r}")
        elif not (SCALE_MIN <= self.scale <= SCALE_MAX):
            errors.append(f"Scale out of range ({SCALE_MIN}-{SCALE_MAX}): {self.scale}")

        if not isinstance(self.noise_divisor, (int, float)) or isinstance(self.noise_divisor, bool):
            errors.append(f"Noise divisor must be a number: {self.noise_divisor!r}")
        elif not (NOISE_MIN <= self.noise_divisor <= NOISE_MAX):
            errors.append(
                f"Noise divisor out of range ({NOISE_MIN}-{NOISE_MAX}): {self.noise_divisor}"
            )

        return (len(errors) == 0, errors)

    def to_form(self) -> Dict[str, str]:
        """Multipart form fields as expected by the recognition service."""
        return {
            'scale': str(int(self.scale)),
            'noise_divisor': str(float(self.noise_divisor)),
        }

    def to_dict(self) -> Dict[str, float]:
        return {'scale': self.scale, 'noise_divisor': self.noise_divisor}
