from enum import Enum


class UpdateType(str, Enum):
    """MongoDB update operators accepted by the update helpers."""
    SET = "$set"              # set field values
    UNSET = "$unset"          # remove fields
    RENAME = "$rename"        # rename fields
    INC = "$inc"              # add to numeric fields
    PUSH = "$push"            # append one array element
    PUSH_ALL = "$pushAll"     # append several array elements
    ADD_TO_SET = "$addToSet"  # append element if not already present
    POP = "$pop"              # remove first or last array element
    PULL = "$pull"            # remove array values matching a condition
    PULL_ALL = "$pullAll"     # remove all listed array values

    @classmethod
    def _missing_(cls, value):
        return cls.SET

    def __str__(self) -> str:
        return self.value
