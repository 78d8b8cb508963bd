from fastapi import Depends, HTTPException
from promptmarket.models.user import Capability, User
from promptmarket.utils.token import get_current_user


def require_capability(capability: Capability):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.can(capability):
            raise HTTPException(status_code=403, detail=f"{capability.value} required")
        return current_user

    return checker


require_seller = require_capability(Capability.can_sell)


def require_admin(current_user: User = Depends(get_current_user)):
    if not current_user.can(Capability.can_moderate):
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
