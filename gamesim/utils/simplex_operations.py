import torch
from typing import Optional


def uniform_mixture(num_actions, dtype=torch.float64):
    '''
    This returns the center point of the simplex
    '''
    return torch.ones(num_actions, dtype=dtype) / num_actions


def random_mixture(num_actions, num_mixtures, sharpness=1.0, generator: Optional[torch.Generator] = None,
                   dtype=torch.float64):
    '''
    This returns random points on the simplex

    Points are uniform on the simplex (Dirichlet(1), drawn as normalized
    Exp(1) samples so an explicit torch.Generator can be threaded through).
    A sharpness above 1 pushes the points toward the vertices.

    Parameters:
    num_actions : int
        Number of dimensions in the simplex
    num_mixtures : int
        Number of random points to generate
    sharpness : float
        Exponent applied to each point before renormalizing
    generator : torch.Generator
        Source of randomness
    Returns:
    torch.Tensor : Tensor of shape (num_mixtures, num_actions)
    '''
    u = torch.rand(num_mixtures, num_actions, generator=generator, dtype=dtype)
    g = -torch.log1p(-u)
    if sharpness != 1.0:
        g = g ** sharpness
    return simplex_normalize(g, dim=-1)


def simplex_projection(y):
    '''
    This projects a vector onto the probability simplex

    returns a projected pytorch tensor
    '''
    y = torch.as_tensor(y, dtype=torch.float64)
    if len(y.shape) == 1:
        u = torch.sort(y, descending=True)[0]
        cumulative_sum = torch.cumsum(u, dim=0)
        ranks = torch.arange(1, len(y) + 1, dtype=y.dtype)
        rho = torch.nonzero(u > (cumulative_sum - 1) / ranks)[-1]
        theta = (cumulative_sum[rho] - 1) / (rho + 1)
        return torch.clamp(y - theta, min=0.0)
    result = torch.zeros_like(y)
    for i in range(y.shape[0]):
        result[i] = simplex_projection(y[i])
    return result


def simplex_normalize(d, epsilon=1e-10, dim=0):
    '''
    normalize to the probability simplex
    returns normalized pytorch tensor
    '''
    d = torch.as_tensor(d, dtype=torch.float64)
    d = torch.clamp(d, min=epsilon)
    return d / torch.sum(d, dim=dim, keepdim=d.dim() > 1)


def l1_distance(a, b) -> float:
    '''
    L1 distance between two mixtures or two lists of per-player mixtures
    '''
    if isinstance(a, (list, tuple)):
        return float(sum(torch.sum(torch.abs(x - y)).item() for x, y in zip(a, b)))
    return float(torch.sum(torch.abs(a - b)).item())

